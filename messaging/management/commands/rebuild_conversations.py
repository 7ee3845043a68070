# Rebuild Conversations Management Command
from django.core.management.base import BaseCommand, CommandError

from messaging.gateway import get_messaging_gateway
from messaging.models import Conversation


class Command(BaseCommand):
    help = 'Recomputes last message, message count and unread counters from stored messages.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--conversation',
            type=int,
            help='Rebuild only this conversation ID.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=500,
            help='Batch size when iterating conversations.',
        )

    def handle(self, *args, **options):
        conversations = Conversation.objects.order_by('id')

        if options['conversation'] is not None:
            conversations = conversations.filter(pk=options['conversation'])
            if not conversations.exists():
                raise CommandError(f"Conversation {options['conversation']} does not exist.")

        gateway = get_messaging_gateway()
        count = 0
        changed = 0

        for conversation in conversations.iterator(chunk_size=options['batch_size']):
            before = (
                conversation.message_count,
                conversation.student_unread,
                conversation.tutor_unread,
                conversation.last_message,
            )
            rebuilt = gateway.rebuild_conversation_state(conversation)
            after = (
                rebuilt.message_count,
                rebuilt.student_unread,
                rebuilt.tutor_unread,
                rebuilt.last_message,
            )
            if before != after:
                changed += 1
                self.stdout.write(
                    f'  Conversation {rebuilt.id}: messages {before[0]} -> {after[0]}, '
                    f'unread student {before[1]} -> {after[1]}, tutor {before[2]} -> {after[2]}'
                )

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} conversations...')

        self.stdout.write(self.style.SUCCESS(
            f'Rebuilt {count} conversation(s), {changed} corrected.'
        ))
