import io

import pandas as pd
from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from loyalty.models import AuditLog, DigiposMaster, Partner

from .models import User, UserRole
from .services import BOOTSTRAP_ADMIN_PASSWORD, BOOTSTRAP_ADMIN_USERNAME


def make_partner_user(username="DGP001", points=0):
    user = User.objects.create_user(
        username=username,
        password="pass1234",
        role=UserRole.PELANGGAN,
        nama=f"Outlet {username}",
    )
    Partner.objects.create(digipos_id=username, user=user, points=points)
    return user


class LoginApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def test_login_returns_token_and_user(self):
        make_partner_user()
        response = self.client.post(
            reverse("auth-login"),
            data={"username": "DGP001", "password": "pass1234"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["token"], Token.objects.get(user__username="DGP001").key)
        self.assertEqual(response.data["user"]["partner"]["digipos_id"], "DGP001")

    def test_login_accepts_id_field(self):
        make_partner_user()
        response = self.client.post(reverse("auth-login"), data={"id": "DGP001", "password": "pass1234"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_wrong_password_rejected(self):
        make_partner_user()
        response = self.client.post(
            reverse("auth-login"),
            data={"username": "DGP001", "password": "salah"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_bootstrap_admin_hash_is_repaired(self):
        admin = User.objects.create_user(username=BOOTSTRAP_ADMIN_USERNAME, password="stale-hash", role=UserRole.ADMIN)
        with self.assertLogs("users.services", level="WARNING"):
            response = self.client.post(
                reverse("auth-login"),
                data={"username": BOOTSTRAP_ADMIN_USERNAME, "password": BOOTSTRAP_ADMIN_PASSWORD},
                format="json",
            )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        admin.refresh_from_db()
        self.assertTrue(admin.check_password(BOOTSTRAP_ADMIN_PASSWORD))

    def test_repair_needs_exact_default_password(self):
        admin = User.objects.create_user(username=BOOTSTRAP_ADMIN_USERNAME, password="stale-hash", role=UserRole.ADMIN)
        response = self.client.post(
            reverse("auth-login"),
            data={"username": BOOTSTRAP_ADMIN_USERNAME, "password": "tebakan"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        admin.refresh_from_db()
        self.assertTrue(admin.check_password("stale-hash"))

    def test_other_accounts_are_never_repaired(self):
        user = User.objects.create_user(username="operator1", password="rahasia", role=UserRole.ADMIN)
        response = self.client.post(
            reverse("auth-login"),
            data={"username": "operator1", "password": BOOTSTRAP_ADMIN_PASSWORD},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        user.refresh_from_db()
        self.assertTrue(user.check_password("rahasia"))


class RegisterApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        DigiposMaster.objects.create(id_digipos="M001", nama_outlet="Cell Jaya", no_rs="RS1", tap="TAP Kupang")

    def test_register_then_duplicate(self):
        payload = {"id_digipos": "M001", "password": "rahasia", "owner": "Budi", "alamat": "Jl. Timor"}
        response = self.client.post(reverse("auth-register"), data=payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["role"], UserRole.PELANGGAN)
        self.assertEqual(response.data["partner"]["level"], "Bronze")
        self.assertEqual(response.data["tap"], "TAP Kupang")

        response = self.client.post(reverse("auth-register"), data=payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(User.objects.filter(username="M001").count(), 1)

    def test_unknown_digipos_is_404(self):
        response = self.client.post(
            reverse("auth-register"),
            data={"id_digipos": "M404", "password": "rahasia"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class SessionApiTests(TestCase):
    def setUp(self):
        self.user = make_partner_user()
        self.client = APIClient()
        self.client.force_authenticate(self.user)

    def test_me_returns_current_user(self):
        response = self.client.get(reverse("auth-me"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["username"], "DGP001")

    def test_logout_deletes_token(self):
        Token.objects.create(user=self.user)
        response = self.client.post(reverse("auth-logout"))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Token.objects.filter(user=self.user).exists())


class UserManagementApiTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(username="admin-user", password="pass1234", role=UserRole.ADMIN)
        self.supervisor = User.objects.create_user(
            username="supervisor-user",
            password="pass1234",
            role=UserRole.SUPERVISOR,
        )
        self.partner_user = make_partner_user(points=40)
        self.client = APIClient()

    def test_admin_creates_partner_user(self):
        DigiposMaster.objects.create(id_digipos="DGP777", nama_outlet="Baru")
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("users-list"),
            data={
                "username": "DGP777",
                "password": "rahasia",
                "nama": "Outlet Baru",
                "role": "pelanggan",
                "partner": {"owner": "Siti", "kabupaten": "Kupang"},
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        partner = Partner.objects.get(pk="DGP777")
        self.assertEqual(partner.owner, "Siti")
        self.assertEqual(partner.level, "Bronze")
        self.assertTrue(DigiposMaster.objects.get(pk="DGP777").is_registered)

    def test_admin_creates_staff_user_without_partner(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("users-list"),
            data={"username": "op2", "password": "rahasia", "role": "operator", "tap": "TAP Atambua", "jabatan": "Staff"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data["partner"])
        self.assertFalse(Partner.objects.filter(user__username="op2").exists())

    def test_supervisor_reads_but_cannot_create(self):
        self.client.force_authenticate(self.supervisor)
        response = self.client.get(reverse("users-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 3)

        response = self.client.post(
            reverse("users-list"),
            data={"username": "x", "password": "rahasia", "role": "operator"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_partner_cannot_list_users(self):
        self.client.force_authenticate(self.partner_user)
        response = self.client.get(reverse("users-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_points_adjustment_clamps(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("users-points", kwargs={"username": "DGP001"}),
            data={"action": "kurang", "amount": 100},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["points"], 0)
        self.assertEqual(AuditLog.objects.count(), 1)

    def test_points_adjustment_on_staff_user_rejected(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("users-points", kwargs={"username": "supervisor-user"}),
            data={"action": "tambah", "amount": 10},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_level_change(self):
        self.client.force_authenticate(self.admin)
        url = reverse("users-level", kwargs={"username": "DGP001"})
        response = self.client.post(url, data={"level": "Platinum"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Partner.objects.get(pk="DGP001").level, "Platinum")

        response = self.client.post(url, data={"level": "Diamond"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_deactivate_is_soft(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse("users-deactivate", kwargs={"username": "DGP001"}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.partner_user.refresh_from_db()
        self.assertFalse(self.partner_user.is_active)
        self.assertTrue(Partner.objects.filter(pk="DGP001").exists())

        response = self.client.post(reverse("users-deactivate", kwargs={"username": "admin-user"}))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_profile_update_by_owner_only(self):
        other = make_partner_user("DGP002")
        self.client.force_authenticate(self.partner_user)
        response = self.client.put(
            reverse("users-profile", kwargs={"username": "DGP001"}),
            data={"phone": "0812000", "partner": {"alamat": "Jl. Baru"}},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["phone"], "0812000")
        self.assertEqual(Partner.objects.get(pk="DGP001").alamat, "Jl. Baru")

        response = self.client.put(
            reverse("users-profile", kwargs={"username": other.username}),
            data={"phone": "0899"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_users_export(self):
        self.client.force_authenticate(self.supervisor)
        response = self.client.get(reverse("users-export"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        df = pd.read_excel(io.BytesIO(response.content), dtype=str).fillna("")
        row = df[df["username"] == "DGP001"].iloc[0]
        self.assertEqual(row["points"], "40")
        self.assertEqual(row["level"], "Bronze")


class CreateBootstrapAdminCommandTests(TestCase):
    def test_command_is_idempotent(self):
        call_command("create_bootstrap_admin", stdout=io.StringIO())
        call_command("create_bootstrap_admin", stdout=io.StringIO())

        admin = User.objects.get(username=BOOTSTRAP_ADMIN_USERNAME)
        self.assertEqual(admin.role, UserRole.ADMIN)
        self.assertTrue(admin.check_password(BOOTSTRAP_ADMIN_PASSWORD))
