from django.apps import AppConfig
from django.conf import settings


class MessagingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'messaging'
    verbose_name = 'Messaging'

    hub = None

    def ready(self):
        from .hub import ChannelHub

        self.hub = ChannelHub(
            buffer_size=settings.MESSAGING_CONNECTION_BUFFER_SIZE,
            idle_timeout=settings.MESSAGING_CONNECTION_IDLE_SECONDS,
            max_per_user=settings.MESSAGING_MAX_CONNECTIONS_PER_USER,
        )

        # Register signal receivers
        from . import receivers  # noqa: F401
