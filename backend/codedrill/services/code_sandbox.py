"""
Code Execution Sandbox Client

Runs submitted code against a question's test cases through a
Judge0-compatible service (``POST /submissions?wait=true``). Each test
case is one synchronous submission with fixed CPU, memory and wall-time
limits.

Transport failures, non-2xx responses and unparseable bodies raise
ExecutionBackendError. A non-"Accepted" execution status (compile error,
runtime error, time limit...) is a failing test case, not a backend error.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import httpx

from codedrill.config import EngineConfig
from codedrill.exceptions import ExecutionBackendError
from codedrill.schemas.answers import CodeTestCase

logger = logging.getLogger(__name__)

# Judge0 CE language ids
LANGUAGE_IDS: Dict[str, int] = {
    "python": 71,
    "python3": 71,
    "javascript": 63,
    "js": 63,
    "java": 62,
    "cpp": 54,
    "c++": 54,
    "c": 50,
    "go": 60,
    "rust": 73,
    "ruby": 72,
    "php": 68,
    "swift": 83,
    "kotlin": 78,
    "typescript": 74,
    "ts": 74,
}

STATUS_ACCEPTED = 3


def language_id(language: str) -> Optional[int]:
    return LANGUAGE_IDS.get((language or "").strip().lower())


def normalize_output(output: Optional[str]) -> str:
    """Trim surrounding whitespace and unify line endings."""
    return (output or "").strip().replace("\r\n", "\n")


@dataclass
class CaseFailure:
    test_number: int
    input: str
    expected: str
    got: str
    error: Optional[str] = None


@dataclass
class ExecutionReport:
    """Outcome of running one program against all of its test cases."""
    total_count: int
    passed_count: int = 0
    time_taken_ms: float = 0.0
    memory_used_kb: int = 0
    failures: List[CaseFailure] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return self.total_count > 0 and self.passed_count == self.total_count


class CodeSandbox:
    """
    Thin synchronous client for the execution service.

    Pass ``client`` to reuse a connection pool or to plug in
    ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:2358",
        cpu_time_limit: float = 5.0,
        memory_limit: int = 128000,
        wall_time_limit: float = 10.0,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.cpu_time_limit = cpu_time_limit
        self.memory_limit = memory_limit
        self.wall_time_limit = wall_time_limit
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: EngineConfig, client: Optional[httpx.Client] = None) -> "CodeSandbox":
        return cls(
            base_url=config.sandbox_url,
            cpu_time_limit=config.sandbox_cpu_time_limit,
            memory_limit=config.sandbox_memory_limit,
            wall_time_limit=config.sandbox_wall_time_limit,
            timeout=config.sandbox_http_timeout,
            client=client,
        )

    def _post(self, payload: dict) -> httpx.Response:
        url = f"{self.base_url}/submissions"
        params = {"wait": "true"}
        if self._client is not None:
            return self._client.post(url, params=params, json=payload, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(url, params=params, json=payload)

    def submit(self, code: str, lang_id: int, stdin: str, expected_output: str) -> dict:
        """Send one submission and return the decoded result body."""
        payload = {
            "source_code": code,
            "language_id": lang_id,
            "stdin": stdin,
            "expected_output": expected_output,
            "cpu_time_limit": self.cpu_time_limit,
            "memory_limit": self.memory_limit,
            "wall_time_limit": self.wall_time_limit,
        }
        try:
            response = self._post(payload)
        except httpx.HTTPError as e:
            raise ExecutionBackendError(f"sandbox request failed: {e}", original_exception=e)

        if response.status_code not in (200, 201):
            raise ExecutionBackendError(
                f"sandbox error (status {response.status_code}): {response.text[:200]}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise ExecutionBackendError("failed to parse sandbox response", original_exception=e)

    def run_tests(self, code: str, language: str, test_cases: Sequence[CodeTestCase]) -> ExecutionReport:
        """
        Run ``code`` once per test case and compare normalized stdout.

        Args:
            code: Program source
            language: Language name (see LANGUAGE_IDS)
            test_cases: Stdin/expected pairs

        Returns:
            ExecutionReport with per-case failures

        Raises:
            ExecutionBackendError: unsupported language or unusable sandbox
        """
        lang_id = language_id(language)
        if lang_id is None:
            raise ExecutionBackendError(f"unsupported language: {language}")

        report = ExecutionReport(total_count=len(test_cases))

        for number, case in enumerate(test_cases, start=1):
            result = self.submit(code, lang_id, case.input, case.expected)
            status = result.get("status") or {}
            stdout = result.get("stdout") or ""

            if result.get("time"):
                try:
                    report.time_taken_ms += float(result["time"]) * 1000
                except (TypeError, ValueError):
                    pass
            report.memory_used_kb = max(report.memory_used_kb, result.get("memory") or 0)

            if status.get("id") != STATUS_ACCEPTED:
                error = result.get("stderr") or result.get("compile_output") or status.get("description")
                logger.debug("Test case %d not accepted: %s", number, error)
                report.failures.append(CaseFailure(number, case.input, case.expected, stdout, error))
                continue

            if normalize_output(stdout) == normalize_output(case.expected):
                report.passed_count += 1
            else:
                report.failures.append(CaseFailure(number, case.input, case.expected, stdout))

        return report
