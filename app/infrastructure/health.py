import asyncio
import time
from datetime import datetime
from typing import Callable, Dict


class HealthChecker:
    def __init__(self):
        self.checks: Dict[str, Callable] = {}

    def register_check(self, name: str, check_func: Callable) -> None:
        self.checks[name] = check_func

    async def run_checks(self) -> Dict:
        pairs = await asyncio.gather(
            *[self._run_single_check(name, func) for name, func in self.checks.items()]
        )
        results = dict(pairs)
        all_healthy = all(r["status"] == "healthy" for r in results.values())
        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": results,
            "timestamp": datetime.now().isoformat(),
        }

    async def _run_single_check(self, name: str, check_func: Callable) -> tuple[str, Dict]:
        try:
            start = time.time()
            if asyncio.iscoroutinefunction(check_func):
                result = await check_func()
            else:
                result = check_func()

            duration = time.time() - start
            return name, {
                "status": "healthy" if result else "unhealthy",
                "duration_ms": int(duration * 1000),
            }
        except Exception as e:
            return name, {"status": "unhealthy", "error": str(e)}
