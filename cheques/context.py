from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RequestContext:
    """Caller metadata recorded alongside audit entries."""
    ip_address: Optional[str] = None
    user_agent: str = ''

    @classmethod
    def from_request(cls, request):
        xff = request.META.get('HTTP_X_FORWARDED_FOR', '')
        if xff:
            ip = xff.split(',')[0].strip()
        else:
            ip = request.META.get('REMOTE_ADDR')
        return cls(ip_address=ip or None, user_agent=request.META.get('HTTP_USER_AGENT', ''))


EMPTY_CONTEXT = RequestContext()
