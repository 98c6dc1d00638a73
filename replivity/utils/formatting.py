"""Human-readable formatting for operational output."""


def format_bytes(num_bytes: float) -> str:
    """Format a byte count, e.g. 1536 -> '1.50 KB'."""
    if num_bytes <= 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(num_bytes)
    index = 0
    while size >= 1024 and index < len(units) - 1:
        size /= 1024
        index += 1

    if index == 0:
        return f"{int(size)} B"
    return f"{size:.2f} {units[index]}"


def format_duration(seconds: float) -> str:
    """Format seconds, e.g. 0.25 -> '250ms', 75 -> '1m 15s'."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"
