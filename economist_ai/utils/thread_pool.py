import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor

IO_POOL_VAL = ThreadPoolExecutor(max_workers=8)


def run_sync(func, *args, **kwargs):
    """
    Run blocking / CPU-heavy / IO-heavy code off the current event loop.
    Used for:
    - PDF / DOCX / spreadsheet loaders
    - FAISS index build, search and persistence
    """
    loop = asyncio.get_running_loop()
    return loop.run_in_executor(IO_POOL_VAL, functools.partial(func, *args, **kwargs))
