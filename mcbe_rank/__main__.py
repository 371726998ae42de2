"""
MCBE Rank 主程序入口

使用方式:
    python -m mcbe_rank [--config config.yaml] [--once]
"""

from mcbe_rank.main import cli

if __name__ == "__main__":
    cli()
