"""
Management command to expire overdue food posts.

Meant to run on a timer (cron, a scheduler, a platform job). Reads also
sweep lazily, so a missed run only delays cleanup of posts nobody looks at.

Usage:
    python manage.py sweep_expired_posts
    python manage.py sweep_expired_posts --dry-run
"""

from django.core.management.base import BaseCommand
from django.utils import timezone

from apps.sharing.services import sweep
from apps.sharing.services.expiry import expired_posts_queryset


class Command(BaseCommand):
    help = 'Expire food posts past their best-before and cancel their active claims'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be expired without making changes',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=None,
            help='Posts per transaction (defaults to SHARING["SWEEP_BATCH_SIZE"])',
        )

    def handle(self, *args, **options):
        now = timezone.now()

        if options['dry_run']:
            overdue = expired_posts_queryset(now).select_related('owner')
            count = overdue.count()
            if count == 0:
                self.stdout.write(self.style.SUCCESS('No overdue posts. All good!'))
                return

            self.stdout.write(f'\nFound {count} overdue post(s):\n')
            for post in overdue:
                self.stdout.write(
                    f'  - {post.id} | {post.status} | Owner: {post.owner.email} | Best before: {post.best_before}'
                )
            self.stdout.write(self.style.WARNING('\n--dry-run mode: No changes made.'))
            return

        result = sweep(now=now, batch_size=options['batch_size'])
        self.stdout.write(
            self.style.SUCCESS(
                f'Expired {len(result.expired_posts)} post(s), '
                f'cancelled {len(result.cancelled_claims)} claim(s).'
            )
        )
