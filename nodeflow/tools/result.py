"""Result type shared by every tool."""

from dataclasses import dataclass


@dataclass
class ToolResult:
    """Outcome of one tool call. Tools report failures here instead of raising."""

    success: bool
    output: str = ""
    error: str | None = None

    def observation(self) -> str:
        """Text fed back to the model."""
        if self.success:
            return self.output or "(no output)"
        if self.output:
            return f"Error: {self.error}\n{self.output}"
        return f"Error: {self.error}"
