"""
Signal receivers connecting the hiring lifecycle to messaging.
"""

import logging

from django.dispatch import receiver

from core.signals import application_hired

from .gateway import get_messaging_gateway

logger = logging.getLogger(__name__)


@receiver(application_hired, dispatch_uid='messaging.provision_conversation')
def provision_conversation(sender, application, payment, **kwargs):
    """
    Open the student/tutor conversation once a hire is committed.

    Runs inside the confirm-payment transaction. Errors propagate so the hire
    rolls back with them.
    """
    tuition = application.tuition
    conversation = get_messaging_gateway().open_conversation(
        tuition.student, application.tutor, tuition.id
    )
    logger.debug(
        f"Conversation provisioned for hire. Application ID: {application.id}, "
        f"Conversation ID: {conversation.id}"
    )
    return conversation
