import logging
from django.utils import timezone

logger = logging.getLogger('audit')


class UserActivityLoggingMiddleWare:
    """Writes one audit line per request: who called which API path from where."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        user = request.user if getattr(request, 'user', None) and request.user.is_authenticated else "Anonymous"
        method = request.method
        path = request.get_full_path()
        ip = self.get_client_ip(request)
        timestamp = timezone.now().isoformat()

        logger.info(f"[{timestamp}] {user} - {method} {path} -> {response.status_code} - IP: {ip}")

        return response

    def get_client_ip(self, request):
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            return x_forwarded_for.split(',')[0].strip()
        return request.META.get('REMOTE_ADDR')
