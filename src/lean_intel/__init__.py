"""lean-intel - LLM-powered codebase intelligence.

lean-intel generates documentation and runs multi-category analysis
(security, license, quality, cost, HIPAA compliance) over a codebase using
large-language-model providers.

Core principles:
- Failure isolation: one failed analyzer never aborts a batch
- Cost awareness: every completion reports tokens and cost
- Idempotence: identical requests against an unchanged codebase are cached
- Provider agnosticism: vendors are swappable behind one interface
"""

__version__ = "0.1.0"
__author__ = "lean-intel Contributors"
