"""
SmartLogs 命令行入口
"""

from smartlogs.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
