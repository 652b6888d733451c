import logging

from rich.console import Console
from rich.logging import RichHandler

err_console = Console(stderr=True)


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(
        console=err_console,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=verbose,
    )
    root = logging.getLogger("gemini_files")
    root.handlers[:] = [handler]
    root.setLevel(level)
    # httpx logs every request at INFO, URL (and key) included.
    logging.getLogger("httpx").setLevel(logging.WARNING)
