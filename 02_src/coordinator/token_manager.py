"""TokenManager: per-agent LLM token usage, cost projection and budget alerts."""

import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from .llm import Usage
from .logging_config import get_logger
from .scheduler import IScheduler
from .storage import IStorage

logger = get_logger(__name__)

# USD per 1k tokens
COST_RATES = {
    "gemini-2.5-pro": 0.00125,
    "gemini-1.5-pro": 0.00125,
    "gemini-2.5-flash": 0.0001875,
    "claude-4-sonnet": 0.018,
    "claude-3-5-sonnet-20241022": 0.003,
    "claude-3-sonnet": 0.003,
    "o4-mini": 0.015,
    "gpt-5-nano": 0.0001,
    "gpt-5-mini": 0.0003,
    "gpt-5": 0.03,
}
DEFAULT_RATE = 0.001

HIGH_USAGE_COST = 0.1
BUDGET_WARNING_RATIO = 0.8
HISTORY_LIMIT = 100
WINDOW = timedelta(hours=1)


@dataclass
class TokenRecord:
    agent_id: str
    model: str
    input_tokens: int
    output_tokens: int
    tokens_used: int
    cost: float
    timestamp: str


def calculate_cost(model: str, tokens: int) -> float:
    return tokens / 1000 * COST_RATES.get(model, DEFAULT_RATE)


def _record_from_doc(doc: dict) -> TokenRecord:
    return TokenRecord(
        agent_id=doc.get("agent_id", "unknown"),
        model=doc.get("model", ""),
        input_tokens=doc.get("input_tokens") or 0,
        output_tokens=doc.get("output_tokens") or 0,
        tokens_used=doc.get("tokens_used") or 0,
        cost=doc.get("cost") or 0.0,
        timestamp=doc.get("timestamp", ""),
    )


class TokenManager:
    """Records usage reported by the LLM clients and writes it to `token_usage`.

    Records are buffered in memory and flushed every interval. The hourly
    budget, when set, is checked on every flush; crossing 80% raises a
    `budget_warning` alert and crossing 100% a `budget_exceeded` alert.
    """

    TIMER = "token_manager"

    def __init__(
        self,
        storage: IStorage,
        scheduler: IScheduler,
        interval: float = 300.0,
        hourly_budget: float | None = None,
        history_size: int = 1000,
    ):
        self._storage = storage
        self._scheduler = scheduler
        self._interval = interval
        self._budget = hourly_budget
        self._records: deque[TokenRecord] = deque(maxlen=history_size)
        self._pending: list[TokenRecord] = []
        self._alert_level: str | None = None

    async def start(self) -> None:
        await self.load_history()
        self._scheduler.every(self.TIMER, self._interval, self.flush)

    async def stop(self) -> None:
        self._scheduler.cancel(self.TIMER)
        await self.flush()

    async def load_history(self) -> None:
        docs = await self._storage.find_documents(
            "token_usage", order_by="timestamp", descending=True, limit=HISTORY_LIMIT
        )
        for doc in reversed(docs):
            self._records.append(_record_from_doc(doc))
        logger.info("Loaded %d token usage records", len(docs))

    def record_usage(self, agent_id: str, usage: Usage) -> TokenRecord:
        record = TokenRecord(
            agent_id=agent_id,
            model=usage.model,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            tokens_used=usage.total_tokens,
            cost=calculate_cost(usage.model, usage.total_tokens),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self._records.append(record)
        self._pending.append(record)
        if record.cost > HIGH_USAGE_COST:
            logger.warning(
                "High token usage for %s: %d tokens, $%.4f",
                agent_id,
                record.tokens_used,
                record.cost,
            )
        return record

    async def flush(self) -> None:
        pending, self._pending = self._pending, []
        if pending:
            await self._storage.set_documents(
                "token_usage", {uuid.uuid4().hex: asdict(r) for r in pending}
            )
        await self.check_budget()

    def get_usage(self, since: datetime | None = None) -> dict:
        """Totals by agent and by model since `since` (default: the last hour)."""
        cutoff = (since or datetime.now(timezone.utc) - WINDOW).isoformat()
        summary: dict = {
            "total_tokens": 0,
            "total_cost": 0.0,
            "by_agent": {},
            "by_model": {},
            "timeline": [],
        }
        for record in self._records:
            if record.timestamp <= cutoff:
                continue
            summary["total_tokens"] += record.tokens_used
            summary["total_cost"] += record.cost
            for key, name in (("by_agent", record.agent_id), ("by_model", record.model)):
                bucket = summary[key].setdefault(name, {"tokens": 0, "cost": 0.0})
                bucket["tokens"] += record.tokens_used
                bucket["cost"] += record.cost
            summary["timeline"].append(
                {"timestamp": record.timestamp, "tokens": record.tokens_used, "cost": record.cost}
            )
        return summary

    def projected_cost(self, hours: float) -> float:
        """Last hour's spend extrapolated over `hours`."""
        return self.get_usage()["total_cost"] * hours

    async def check_budget(self) -> bool:
        """False once the last hour's spend exceeds the hourly budget."""
        if self._budget is None:
            return True
        cost = self.get_usage()["total_cost"]
        if cost > self._budget:
            level = "exceeded"
        elif cost > self._budget * BUDGET_WARNING_RATIO:
            level = "warning"
        else:
            level = None

        if level and level != self._alert_level:
            await self._alert(level, cost)
        self._alert_level = level
        return cost <= self._budget

    async def _alert(self, level: str, cost: float) -> None:
        if level == "exceeded":
            kind, severity = "budget_exceeded", "critical"
            message = f"Token budget exceeded: ${cost:.2f} (limit: ${self._budget})"
            logger.error(message)
        else:
            kind, severity = "budget_warning", "warning"
            message = f"Token usage at 80% of budget: ${cost:.2f} of ${self._budget}"
            logger.warning(message)
        await self._storage.add_document(
            "alerts",
            {
                "type": kind,
                "severity": severity,
                "message": message,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    def get_usage_report(self) -> dict:
        usage = self.get_usage()
        del usage["timeline"]
        return {
            **usage,
            "projected_cost_24h": self.projected_cost(24),
            "hourly_budget": self._budget,
            "within_budget": self._budget is None or usage["total_cost"] <= self._budget,
            "pending": len(self._pending),
        }
