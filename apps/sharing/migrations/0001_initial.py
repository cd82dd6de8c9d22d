import uuid
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='FoodPost',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('available', 'Available'), ('requested', 'Requested'), ('reserved', 'Reserved'), ('collected', 'Collected'), ('expired', 'Expired')], db_index=True, default='available', max_length=20)),
                ('best_before', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('owner', models.ForeignKey(editable=False, on_delete=django.db.models.deletion.CASCADE, related_name='food_posts', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'sharing_food_posts',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'best_before'], name='post_status_deadline_idx'),
                    models.Index(fields=['owner', 'created_at'], name='post_owner_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Claim',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('accepted', 'Accepted'), ('declined', 'Declined'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=20)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now, editable=False)),
                ('updated_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('post', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='claims', to='sharing.foodpost')),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='claims', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'sharing_claims',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['post', 'status'], name='claim_post_status_idx'),
                    models.Index(fields=['requester', 'created_at'], name='claim_requester_created_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', ['pending', 'accepted'])), fields=('post', 'requester'), name='unique_active_claim_per_requester'),
                    models.UniqueConstraint(condition=models.Q(('status', 'accepted')), fields=('post',), name='unique_accepted_claim_per_post'),
                ],
            },
        ),
    ]
