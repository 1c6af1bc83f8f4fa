from django.core.management.base import BaseCommand

from users.models import User, UserRole
from users.services import BOOTSTRAP_ADMIN_PASSWORD, BOOTSTRAP_ADMIN_USERNAME


class Command(BaseCommand):
    help = "Create the default admin account if it does not exist yet."

    def handle(self, *args, **options):
        if User.objects.filter(username=BOOTSTRAP_ADMIN_USERNAME).exists():
            self.stdout.write(f"User '{BOOTSTRAP_ADMIN_USERNAME}' already exists, nothing to do.")
            return

        User.objects.create_user(
            username=BOOTSTRAP_ADMIN_USERNAME,
            password=BOOTSTRAP_ADMIN_PASSWORD,
            role=UserRole.ADMIN,
            nama="Administrator",
            is_staff=True,
        )
        self.stdout.write(self.style.SUCCESS(f"Admin '{BOOTSTRAP_ADMIN_USERNAME}' created."))
