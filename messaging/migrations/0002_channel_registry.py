import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('messaging', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ChannelConnection',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('client_id', models.CharField(max_length=32, unique=True, verbose_name='client ID')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('last_seen_at', models.DateTimeField(verbose_name='last seen at')),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='channel_connections', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'channel connection',
                'verbose_name_plural': 'channel connections',
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['user', 'last_seen_at'], name='messaging_c_user_id_4e7b1a_idx'),
                    models.Index(fields=['last_seen_at'], name='messaging_c_last_se_9c2d5f_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ChannelMembership',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('joined_at', models.DateTimeField(auto_now_add=True, verbose_name='joined at')),
                ('connection', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to='messaging.channelconnection')),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='channel_memberships', to='messaging.conversation')),
            ],
            options={
                'verbose_name': 'channel membership',
                'verbose_name_plural': 'channel memberships',
                'constraints': [
                    models.UniqueConstraint(fields=('connection', 'conversation'), name='unique_channel_membership'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ChannelEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sequence', models.PositiveIntegerField(verbose_name='sequence')),
                ('payload', models.JSONField(verbose_name='payload')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('connection', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='events', to='messaging.channelconnection')),
                ('conversation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='channel_events', to='messaging.conversation')),
            ],
            options={
                'verbose_name': 'channel event',
                'verbose_name_plural': 'channel events',
                'ordering': ['conversation_id', 'sequence', 'id'],
                'indexes': [
                    models.Index(fields=['connection', 'id'], name='messaging_c_connect_b3f8e6_idx'),
                ],
            },
        ),
    ]
