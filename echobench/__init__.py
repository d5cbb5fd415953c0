"""
EchoBench - escalating-load echo benchmark.

Grows a pool of persistent connections round over round, fires a batch of
tagged echo requests per connection, decides when each batch has settled
with a stagnation heuristic, and reports round-trip latency per round.
"""

__version__ = "1.0.0"
__author__ = "EchoBench Contributors"
