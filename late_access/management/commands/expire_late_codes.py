from django.core.management.base import BaseCommand
from django.utils import timezone

from assessments.models import ExamAttempt
from assessments.services.attempt_service import expire_stale_attempts
from late_access.models import LateAccessCode
from late_access.services import LateAccessRegistry


class Command(BaseCommand):
    help = 'Marks past-due late-access codes and in-progress attempts as expired'

    def add_arguments(self, parser):
        parser.add_argument('--codes-only', action='store_true', help='Leave attempts alone')
        parser.add_argument('--dry-run', action='store_true', help='Only report what would change')

    def handle(self, *args, **options):
        now = timezone.now()

        if options['dry_run']:
            codes = LateAccessCode.objects.filter(status=LateAccessCode.Status.ACTIVE, expires_at__lte=now).count()
            attempts = ExamAttempt.objects.filter(status=ExamAttempt.Status.STARTED, expires_at__lte=now).count()
            self.stdout.write(f"Would expire {codes} late code(s) and {attempts} attempt(s)")
            return

        codes = LateAccessRegistry.expire_stale_codes(now)
        self.stdout.write(self.style.SUCCESS(f"Expired {codes} late code(s)"))

        if not options['codes_only']:
            attempts = expire_stale_attempts(now)
            self.stdout.write(self.style.SUCCESS(f"Expired {attempts} attempt(s)"))
