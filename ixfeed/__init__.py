"""
ixfeed - feed and sitemap watcher for IndexNow

Modules:
- config: Configuration loading and validation
- fetcher: HTTP fetching with retry logic
- sitemap_parser / feed_parser: document decoding
- decoder: (url, modified_at) extraction with sitemap index expansion
- ledger: SQLite store for sources and per-source URL state
- reconcile: new/modified/unchanged classification and ledger commit
- batcher: size-bounded submission batches
- submitter: IndexNow submission gateway
- policy: dry-run / unattended / interactive decisions
- change_log: monthly CSV history of submissions
- pipeline: per-source processing loop and run summary
- sources: interactive source management
- main: command line entry point
"""

__version__ = "0.3.0"
