"""
Transaction logging for finished logical requests
"""

import csv
import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

from .logging import setup_logging

logger = setup_logging()


@dataclass
class TransactionRecord:
    """One CSV row per logical request"""
    timestamp: str
    request_id: str
    client_id: Optional[str] = None
    task_kind: Optional[str] = None
    state: Optional[str] = None

    # What actually happened
    success: bool = False
    provider_used: Optional[str] = None
    model_used: Optional[str] = None

    # Performance metrics
    total_time_ms: Optional[int] = None

    # Usage metrics
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    cost_usd: Optional[float] = None

    # Results and reasons
    finish_reason: Optional[str] = None
    failure_reason: Optional[str] = None
    error_message: Optional[str] = None

    # Fallback info
    attempts: int = 0
    candidates_tried: int = 0
    fallbacks: int = 0


class TransactionLogger:
    """Handles CSV logging of finished requests"""

    def __init__(self, enabled: bool = True, log_dir: str = "logs"):
        self.enabled = enabled
        self.log_dir = Path(log_dir)
        self.csv_file = self.log_dir / "transactions.csv"
        self._write_lock = asyncio.Lock()

        if self.enabled:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._ensure_headers()

    def _ensure_headers(self):
        """Ensure CSV headers are written"""
        if not self.csv_file.exists():
            with open(self.csv_file, 'w', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=self._get_fieldnames())
                writer.writeheader()

    def _get_fieldnames(self) -> list:
        """Get CSV fieldnames from TransactionRecord"""
        return list(TransactionRecord.__dataclass_fields__.keys())

    def create_record(self, result, client_id: Optional[str] = None) -> TransactionRecord:
        """Build a row from a RequestResult"""
        tried = len(result.candidates_tried)
        return TransactionRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=result.request_id,
            client_id=client_id,
            task_kind=result.task_kind.value,
            state=result.state.value,
            success=result.success,
            provider_used=result.provider_used,
            model_used=result.model_used,
            total_time_ms=result.total_time_ms,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            cost_usd=round(result.cost_usd, 8),
            finish_reason=result.finish_reason,
            failure_reason=result.failure_reason.value if result.failure_reason else None,
            error_message=None if result.success else result.message,
            attempts=len(result.attempts),
            candidates_tried=tried,
            fallbacks=max(0, tried - 1),
        )

    async def log_transaction(self, record: TransactionRecord):
        """Log a transaction record to CSV"""
        if not self.enabled:
            return

        try:
            async with self._write_lock:
                record_dict = asdict(record)

                with open(self.csv_file, 'a', newline='', encoding='utf-8') as f:
                    writer = csv.DictWriter(f, fieldnames=self._get_fieldnames())
                    writer.writerow(record_dict)

                logger.debug("Transaction logged", request_id=record.request_id)

        except OSError as e:
            logger.error("Failed to log transaction",
                        request_id=record.request_id,
                        error=str(e))

    async def log_result(self, result, client_id: Optional[str] = None):
        """Convenience wrapper: build and log the row for a RequestResult"""
        if not self.enabled:
            return
        await self.log_transaction(self.create_record(result, client_id))

    async def get_stats_summary(self) -> Dict[str, Any]:
        """Get basic statistics summary from the CSV file"""
        if not self.enabled or not self.csv_file.exists():
            return {"enabled": False}

        try:
            total_requests = 0
            successful_requests = 0
            task_kinds = {}
            providers_used = {}
            failure_reasons = {}
            total_cost = 0.0
            total_fallbacks = 0

            with open(self.csv_file, 'r', newline='', encoding='utf-8') as f:
                reader = csv.DictReader(f)

                for row in reader:
                    total_requests += 1

                    if row['success'] == 'True':
                        successful_requests += 1

                    if row['task_kind']:
                        kind = row['task_kind']
                        task_kinds[kind] = task_kinds.get(kind, 0) + 1

                    if row['provider_used']:
                        provider = row['provider_used']
                        providers_used[provider] = providers_used.get(provider, 0) + 1

                    if row['failure_reason']:
                        reason = row['failure_reason']
                        failure_reasons[reason] = failure_reasons.get(reason, 0) + 1

                    if row['cost_usd']:
                        try:
                            total_cost += float(row['cost_usd'])
                        except ValueError:
                            logger.debug("Unparseable cost in transaction log", request_id=row['request_id'])

                    if row['fallbacks']:
                        total_fallbacks += int(row['fallbacks'])

            return {
                "enabled": True,
                "total_requests": total_requests,
                "successful_requests": successful_requests,
                "success_rate": successful_requests / total_requests if total_requests > 0 else 0,
                "task_kinds": task_kinds,
                "providers_used": providers_used,
                "failure_reasons": failure_reasons,
                "total_fallbacks": total_fallbacks,
                "total_cost_usd": round(total_cost, 6),
                "log_file": str(self.csv_file)
            }

        except (OSError, csv.Error, KeyError, ValueError) as e:
            logger.error("Failed to generate stats summary", error=str(e))
            return {"enabled": True, "error": str(e)}
