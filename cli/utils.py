"""Utility functions for CLI output."""

from cli.constants import GREEN, RESET

PROGRESS_BAR_WIDTH = 20


def format_progress_bar(rate: float, width: int = PROGRESS_BAR_WIDTH) -> str:
    """
    Render a completion rate as a text progress bar.

    Args:
        rate: Completion fraction, clamped to [0, 1]
        width: Number of cells in the bar

    Returns:
        Bar with percentage (e.g., "[#####---------------] 25.0%")
    """
    rate = max(0.0, min(1.0, rate))
    filled = int(round(rate * width))
    bar = "#" * filled + "-" * (width - filled)
    return f"[{bar}] {GREEN}{rate * 100:.1f}%{RESET}"


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    units = ['KiB', 'MiB', 'GiB', 'TiB']
    size = size_bytes / 1024.0

    for unit in units:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"
