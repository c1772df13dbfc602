import math


SIZE_UNITS = ['Bytes', 'KB', 'MB', 'GB', 'TB']


def format_file_size(num_bytes: float) -> str:
    """
    Format a byte count for log output.

    Examples: 0 -> '0 Bytes', 1536 -> '1.5 KB'
    """
    if num_bytes <= 0:
        return '0 Bytes'

    index = max(0, min(int(math.floor(math.log(num_bytes, 1024))), len(SIZE_UNITS) - 1))
    value = round(num_bytes / math.pow(1024, index), 2)
    if value == int(value):
        value = int(value)
    return f"{value} {SIZE_UNITS[index]}"
