"""Client side of the enquiry flow.

Public API:
    EnquiryClient  — runs an enquiry against a gateway and maps the outcome
    EnquiryResult  — user-facing result (state, records, message)
    EnquiryState   — the seven states a finished enquiry can be in
    ResultCache    — local TTL cache of successful lookups + last query
"""

from fsenquiry.client.api import EnquiryClient, EnquiryResult, EnquiryState
from fsenquiry.client.cache import ResultCache

__all__ = ["EnquiryClient", "EnquiryResult", "EnquiryState", "ResultCache"]
