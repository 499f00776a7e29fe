from datetime import datetime


class Console:
    """Timestamped log lines and indented progress lines, silenced by verbose=False"""

    def __init__(self, verbose: bool = True):
        self.verbose = verbose

    def log(self, msg: str, level: str = "INFO"):
        """Log message with timestamp"""
        if self.verbose:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            print(f"[{timestamp}] {level}: {msg}", flush=True)

    def progress(self, msg: str):
        """Print progress without timestamp (for inline updates)"""
        if self.verbose:
            print(f"  → {msg}", flush=True)
