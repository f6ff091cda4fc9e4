"""
使用方式:
    python -m metrics_aggregator
    或
    metrics-aggregator
"""

from metrics_aggregator.main import cli

if __name__ == "__main__":
    cli()
