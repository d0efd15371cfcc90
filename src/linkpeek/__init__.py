"""
Linkpeek -- render attacker-supplied URLs without becoming an SSRF vector.

Linkpeek fetches pages through a remote headless Chrome. Before any
browser work, and again for every request the page makes, the egress
guard checks that the target resolves only to public addresses, and the
admission limiter checks that the caller is within budget.
"""

__version__ = "1.2.0"
__author__ = "Linkpeek Team"
