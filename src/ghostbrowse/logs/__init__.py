from ghostbrowse.logs.logger import JsonlLogger

__all__ = ["JsonlLogger"]
