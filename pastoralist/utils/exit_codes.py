"""Centralized exit codes for the pastoralist CLI."""


class ExitCodes:
    """Standard exit codes for pastoralist CLI commands."""

    SUCCESS = 0

    VULNERABILITIES_FOUND = 1

    TASK_INCOMPLETE = 3

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get human-readable description for an exit code."""
        descriptions = {
            cls.SUCCESS: "Success - No vulnerable packages found",
            cls.VULNERABILITIES_FOUND: "Vulnerable packages detected",
            cls.TASK_INCOMPLETE: "Task could not be completed due to missing prerequisites",
        }
        return descriptions.get(code, f"Unknown exit code: {code}")

    @classmethod
    def for_scan(cls, vulnerable_count: int) -> int:
        """Map a scan outcome to the quiet-mode exit code."""
        return cls.VULNERABILITIES_FOUND if vulnerable_count > 0 else cls.SUCCESS
