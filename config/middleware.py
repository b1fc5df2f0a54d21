"""
Request middleware:
- Caller metadata (client IP, user agent) captured once per request
- Host-based admin access restriction
"""

from django.conf import settings
from django.http import HttpResponseRedirect

from cheques.context import RequestContext


class RequestContextMiddleware:
    """Attach a RequestContext to every request as `request.request_context`."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.request_context = RequestContext.from_request(request)
        return self.get_response(request)


class AdminHostRestrictionMiddleware:
    """
    Block access to /admin/ on any host other than settings.ADMIN_DOMAIN.
    An empty ADMIN_DOMAIN leaves the admin reachable everywhere.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.admin_domain = getattr(settings, 'ADMIN_DOMAIN', '')

    def __call__(self, request):
        if self.admin_domain and request.path.startswith('/admin/'):
            host = request.get_host().split(':')[0]
            if host != self.admin_domain:
                return HttpResponseRedirect('/')
        return self.get_response(request)
