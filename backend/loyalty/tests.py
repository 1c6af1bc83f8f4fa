from datetime import date
from decimal import Decimal
import io
import shutil
import tempfile
import threading
from unittest import mock

import pandas as pd
import requests
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from users.models import User, UserRole

from .exceptions import (
    AlreadyRegistered,
    DigiposNotFound,
    InsufficientPoints,
    InvalidUpload,
    LevelNotFound,
    LoyaltyError,
    NoCoupons,
    OutOfStock,
    PartnerNotFound,
)
from .models import (
    AuditAction,
    AuditLog,
    CouponRedemption,
    DigiposMaster,
    Location,
    LoyaltyProgram,
    Partner,
    RaffleProgram,
    RaffleWinner,
    Redemption,
    RedemptionStatus,
    Reward,
    RunningProgram,
    RunningProgramTarget,
    SpecialNumber,
    Transaction,
    WhatsAppSettings,
)
from .notifications import send_whatsapp_message
from .services import (
    add_transaction,
    adjust_points,
    calculate_points,
    change_level,
    draw_winner,
    import_progress,
    import_special_numbers,
    import_transactions,
    lookup_digipos,
    raffle_participants,
    redeem_reward,
    register_partner,
    set_participants,
    update_progress,
    update_redemption_status,
)
from .spreadsheets import XLSX_CONTENT_TYPE, parse_date

MEDIA_ROOT = tempfile.mkdtemp()


def make_partner(digipos_id="DGP001", points=0, level="Bronze"):
    user = User.objects.create_user(
        username=digipos_id,
        password="pass1234",
        role=UserRole.PELANGGAN,
        nama=f"Outlet {digipos_id}",
    )
    return Partner.objects.create(digipos_id=digipos_id, user=user, points=points, level=level)


def make_staff(username="admin-user", role=UserRole.ADMIN):
    return User.objects.create_user(username=username, password="pass1234", role=role)


def build_xlsx(rows, name="upload.xlsx"):
    buffer = io.BytesIO()
    pd.DataFrame(rows).to_excel(buffer, index=False, engine="openpyxl")
    return SimpleUploadedFile(name, buffer.getvalue(), content_type=XLSX_CONTENT_TYPE)


def png_upload(name="photo.png"):
    return SimpleUploadedFile(name, b"\x89PNG\r\n\x1a\nfake", content_type="image/png")


class PointsTests(TestCase):
    def test_gold_partner_earns_multiplied_points(self):
        partner = make_partner(level="Gold")
        trx = add_transaction(partner.pk, date(2024, 5, 1), "Voucher 10GB", Decimal("98000"), 10)

        self.assertEqual(trx.total_pembelian, Decimal("980000"))
        self.assertEqual(trx.points_earned, 1176)
        partner.refresh_from_db()
        self.assertEqual(partner.points, 1176)

    def test_points_accumulate_on_existing_balance(self):
        partner = make_partner(points=500)
        add_transaction(partner.pk, date(2024, 5, 1), "Perdana", Decimal("25000"), 4)
        partner.refresh_from_db()
        self.assertEqual(partner.points, 600)

    def test_unknown_level_uses_default_multiplier(self):
        partner = make_partner(level="Diamond")
        trx = add_transaction(partner.pk, date(2024, 5, 1), "Perdana", Decimal("10000"), 1)
        self.assertEqual(trx.points_earned, 10)

    def test_points_are_floored(self):
        self.assertEqual(calculate_points(Decimal("1999"), Decimal("1.10")), 2)
        self.assertEqual(calculate_points(Decimal("999"), Decimal("1.00")), 0)

    def test_unknown_partner_creates_nothing(self):
        with self.assertRaises(PartnerNotFound):
            add_transaction("MISSING", date(2024, 5, 1), "Perdana", Decimal("10000"), 1)
        self.assertEqual(Transaction.objects.count(), 0)

    def test_total_too_large_for_column_creates_nothing(self):
        partner = make_partner()
        with self.assertRaises(LoyaltyError):
            add_transaction(partner.pk, date(2024, 5, 1), "Perdana", Decimal("999999999999.99"), 100000)

        self.assertEqual(Transaction.objects.count(), 0)
        partner.refresh_from_db()
        self.assertEqual(partner.points, 0)

    def test_harga_is_rounded_before_points(self):
        partner = make_partner()
        trx = add_transaction(partner.pk, date(2024, 5, 1), "Perdana", Decimal("1999.995"), 1)

        trx.refresh_from_db()
        self.assertEqual(trx.harga, Decimal("2000.00"))
        self.assertEqual(trx.total_pembelian, Decimal("2000.00"))
        self.assertEqual(trx.points_earned, 2)


class RedemptionServiceTests(TestCase):
    def setUp(self):
        self.partner = make_partner(points=2500)
        self.reward = Reward.objects.create(name="Payung", points=2500, stock=3)

    def test_exact_balance_redemption_leaves_zero(self):
        redemption = redeem_reward(self.partner.pk, self.reward.pk)

        self.partner.refresh_from_db()
        self.reward.refresh_from_db()
        self.assertEqual(self.partner.points, 0)
        self.assertEqual(self.reward.stock, 2)
        self.assertEqual(redemption.status, RedemptionStatus.DIAJUKAN)
        self.assertEqual(redemption.points_spent, 2500)
        self.assertEqual(redemption.user_name, "Outlet DGP001")
        self.assertEqual(redemption.reward_name, "Payung")

    def test_insufficient_points_changes_nothing(self):
        Partner.objects.filter(pk=self.partner.pk).update(points=100)
        with self.assertRaises(InsufficientPoints):
            redeem_reward(self.partner.pk, self.reward.pk)

        self.partner.refresh_from_db()
        self.reward.refresh_from_db()
        self.assertEqual(self.partner.points, 100)
        self.assertEqual(self.reward.stock, 3)
        self.assertEqual(Redemption.objects.count(), 0)

    def test_out_of_stock_changes_nothing(self):
        Reward.objects.filter(pk=self.reward.pk).update(stock=0)
        with self.assertRaises(OutOfStock):
            redeem_reward(self.partner.pk, self.reward.pk)

        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 2500)
        self.assertEqual(Redemption.objects.count(), 0)

    def test_partner_and_reward_rows_are_locked(self):
        with mock.patch.object(
            Partner.objects, "select_for_update", wraps=Partner.objects.select_for_update
        ) as partner_lock, mock.patch.object(
            Reward.objects, "select_for_update", wraps=Reward.objects.select_for_update
        ) as reward_lock:
            redeem_reward(self.partner.pk, self.reward.pk)

        partner_lock.assert_called_once_with()
        reward_lock.assert_called_once_with()

    def test_second_redemption_on_spent_balance_fails(self):
        redeem_reward(self.partner.pk, self.reward.pk)
        with self.assertRaises(InsufficientPoints):
            redeem_reward(self.partner.pk, self.reward.pk)

        self.partner.refresh_from_db()
        self.reward.refresh_from_db()
        self.assertEqual(self.partner.points, 0)
        self.assertEqual(self.reward.stock, 2)
        self.assertEqual(Redemption.objects.count(), 1)

    def test_points_spent_must_match_reward_cost(self):
        with self.assertRaises(LoyaltyError):
            redeem_reward(self.partner.pk, self.reward.pk, points_spent=10)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 2500)

    def test_coupon_redemption_with_active_raffle(self):
        raffle = RaffleProgram.objects.create(name="Undian Agustus", prize="Motor", is_active=True)
        redemption = redeem_reward(self.partner.pk, self.reward.pk, is_kupon=True)

        self.partner.refresh_from_db()
        self.assertEqual(self.partner.kupon_undian, 1)
        coupon = CouponRedemption.objects.get()
        self.assertEqual(coupon.raffle_program, raffle)
        self.assertEqual(coupon.redemption, redemption)

    def test_coupon_redemption_without_active_raffle(self):
        redeem_reward(self.partner.pk, self.reward.pk, is_kupon=True)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.kupon_undian, 0)
        self.assertFalse(CouponRedemption.objects.exists())

    def test_notification_sent_after_commit(self):
        with mock.patch("loyalty.services.notify_redemption_created") as notify:
            with self.captureOnCommitCallbacks(execute=True):
                redemption = redeem_reward(self.partner.pk, self.reward.pk)
        notify.assert_called_once_with(redemption)

    def test_snapshot_survives_reward_deletion(self):
        redemption = redeem_reward(self.partner.pk, self.reward.pk)
        self.reward.delete()
        redemption.refresh_from_db()
        self.assertIsNone(redemption.reward)
        self.assertEqual(redemption.reward_name, "Payung")

    def test_completion_requires_photo(self):
        redemption = redeem_reward(self.partner.pk, self.reward.pk)
        with self.assertRaises(LoyaltyError):
            update_redemption_status(redemption, RedemptionStatus.SELESAI)

        update_redemption_status(redemption, RedemptionStatus.DIPROSES, note="Dikirim")
        redemption.refresh_from_db()
        self.assertEqual(redemption.status, RedemptionStatus.DIPROSES)
        self.assertEqual(redemption.status_note, "Dikirim")
        self.assertIsNotNone(redemption.status_updated_at)
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.REDEMPTION_STATUS).exists())


@skipUnlessDBFeature("has_select_for_update")
class ConcurrentRedemptionTests(TransactionTestCase):
    serialized_rollback = True

    def test_parallel_redemptions_cannot_overspend(self):
        partner = make_partner(points=3000)
        reward = Reward.objects.create(name="Payung", points=2500, stock=5)
        barrier = threading.Barrier(2)
        outcomes = []

        def redeem():
            try:
                barrier.wait()
                redeem_reward(partner.pk, reward.pk)
                outcomes.append("ok")
            except InsufficientPoints:
                outcomes.append("insufficient")
            finally:
                connection.close()

        with mock.patch("loyalty.services.notify_redemption_created"):
            threads = [threading.Thread(target=redeem) for _ in range(2)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        self.assertEqual(sorted(outcomes), ["insufficient", "ok"])
        partner.refresh_from_db()
        reward.refresh_from_db()
        self.assertEqual(partner.points, 500)
        self.assertEqual(reward.stock, 4)
        self.assertEqual(Redemption.objects.count(), 1)


class AdminBalanceTests(TestCase):
    def setUp(self):
        self.partner = make_partner(points=50)
        self.admin = make_staff()

    def test_subtraction_is_clamped_at_zero(self):
        balance = adjust_points(self.partner.pk, 80, "kurang", user=self.admin)
        self.assertEqual(balance, 0)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 0)
        log = AuditLog.objects.get(action=AuditAction.ADJUST_POINTS)
        self.assertEqual(log.user, self.admin)
        self.assertEqual(log.metadata["amount"], 80)

    def test_addition(self):
        self.assertEqual(adjust_points(self.partner.pk, 25, "tambah"), 75)

    def test_invalid_adjustments_rejected(self):
        with self.assertRaises(LoyaltyError):
            adjust_points(self.partner.pk, 10, "kali")
        with self.assertRaises(LoyaltyError):
            adjust_points(self.partner.pk, 0, "tambah")
        with self.assertRaises(LoyaltyError):
            adjust_points(self.partner.pk, "abc", "tambah")

    def test_change_level(self):
        change_level(self.partner.pk, "Silver", user=self.admin)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.level, "Silver")

        with self.assertRaises(LevelNotFound):
            change_level(self.partner.pk, "Diamond")


class RaffleTests(TestCase):
    def test_only_one_raffle_active(self):
        first = RaffleProgram.objects.create(name="Undian 1", is_active=True)
        second = RaffleProgram.objects.create(name="Undian 2", is_active=True)
        first.refresh_from_db()
        self.assertFalse(first.is_active)
        self.assertEqual(RaffleProgram.get_active(), second)
        self.assertEqual(RaffleProgram.objects.filter(is_active=True).count(), 1)

    def test_draw_without_coupons_fails(self):
        raffle = RaffleProgram.objects.create(name="Undian", is_active=True)
        with self.assertRaises(NoCoupons):
            draw_winner(raffle)
        self.assertFalse(RaffleWinner.objects.exists())

    def test_draw_picks_coupon_holder(self):
        raffle = RaffleProgram.objects.create(name="Undian", prize="Motor", period="2024-08", is_active=True)
        partner = make_partner()
        other = make_partner("DGP002")
        for _ in range(3):
            CouponRedemption.objects.create(partner=partner, raffle_program=raffle)
        CouponRedemption.objects.create(partner=other, raffle_program=raffle)

        winner = draw_winner(raffle)
        self.assertIn(winner.partner_id, {"DGP001", "DGP002"})
        self.assertEqual(winner.prize, "Motor")
        self.assertEqual(winner.period, "2024-08")
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.DRAW_WINNER).exists())

        participants = raffle_participants(raffle)
        self.assertEqual(participants[0], {"id_digipos": "DGP001", "nama": "Outlet DGP001", "coupons": 3})
        self.assertEqual(participants[1]["coupons"], 1)


class TransactionImportTests(TestCase):
    def setUp(self):
        self.partner = make_partner()

    def test_bad_rows_are_reported_and_good_rows_committed(self):
        upload = build_xlsx(
            [
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "10000", "kuantiti": "2"},
                {"tanggal": "2024-05-01", "id_digipos": "NOPE", "produk": "Perdana", "harga": "10000", "kuantiti": "2"},
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "abc", "kuantiti": "2"},
                {"tanggal": "bukan tanggal", "id_digipos": "DGP001", "produk": "Perdana", "harga": "10000", "kuantiti": "2"},
                {"tanggal": "2024-05-02", "id_digipos": "DGP001", "produk": "Voucher", "harga": "5000", "kuantiti": "0"},
            ]
        )
        result = import_transactions(upload)

        self.assertEqual(result.success, 1)
        self.assertEqual(result.failed, 4)
        self.assertTrue(result.errors[0].startswith("Baris 3:"))
        self.assertTrue(result.errors[1].startswith("Baris 4:"))
        self.assertEqual(Transaction.objects.count(), 1)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 20)

    def test_amounts_wider_than_columns_are_row_failures(self):
        upload = build_xlsx(
            [
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "10000", "kuantiti": "1"},
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "1e15", "kuantiti": "1"},
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "999999999999", "kuantiti": "1000"},
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "1000", "kuantiti": "1e12"},
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Voucher", "harga": "1999.995", "kuantiti": "1"},
            ]
        )
        result = import_transactions(upload)

        self.assertEqual(result.success, 2)
        self.assertEqual(result.failed, 3)
        self.assertEqual(
            result.errors,
            [
                "Baris 3: harga tidak valid",
                "Baris 4: total pembelian melebihi batas",
                "Baris 5: kuantiti tidak valid",
            ],
        )
        self.assertEqual(Transaction.objects.get(produk="Voucher").harga, Decimal("2000.00"))
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 12)

    def test_infrastructure_error_rolls_back_whole_batch(self):
        upload = build_xlsx(
            [
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "10000", "kuantiti": "1"},
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Voucher", "harga": "5000", "kuantiti": "1"},
            ]
        )
        real_create = Transaction.objects.create
        calls = []

        def failing_on_second_row(**kwargs):
            calls.append(kwargs)
            if len(calls) == 2:
                raise DatabaseError("connection lost")
            return real_create(**kwargs)

        with mock.patch.object(Transaction.objects, "create", side_effect=failing_on_second_row):
            with self.assertRaises(DatabaseError):
                import_transactions(upload)

        self.assertEqual(Transaction.objects.count(), 0)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 0)

    def test_headers_are_normalized(self):
        upload = build_xlsx(
            [{"Tanggal": "2024-05-01", "ID Digipos": "DGP001", "Produk": "Perdana", "Harga": "10000", "Kuantiti": "1"}]
        )
        result = import_transactions(upload)
        self.assertEqual(result.success, 1)

    def test_missing_columns_rejected(self):
        with self.assertRaises(InvalidUpload):
            import_transactions(build_xlsx([{"id_digipos": "DGP001", "harga": "1000"}]))

    def test_wrong_extension_rejected(self):
        with self.assertRaises(InvalidUpload):
            import_transactions(SimpleUploadedFile("data.csv", b"a,b\n1,2", content_type="text/csv"))
        self.assertEqual(Transaction.objects.count(), 0)


class ParseDateTests(TestCase):
    def test_slashed_dates_are_day_first(self):
        self.assertEqual(parse_date("01/05/2024"), date(2024, 5, 1))
        self.assertEqual(parse_date("31/12/2024"), date(2024, 12, 31))

    def test_iso_dates_are_year_month_day(self):
        self.assertEqual(parse_date("2024-05-01"), date(2024, 5, 1))
        self.assertEqual(parse_date("2024-05-01 00:00:00"), date(2024, 5, 1))

    def test_garbage_is_none(self):
        self.assertIsNone(parse_date(""))
        self.assertIsNone(parse_date("bukan tanggal"))
        self.assertIsNone(parse_date("2024-13-01"))


class RunningProgramServiceTests(TestCase):
    def setUp(self):
        self.program = RunningProgram.objects.create(
            name="Program Juli",
            start_date=date(2024, 7, 1),
            end_date=date(2024, 7, 31),
        )
        self.first = make_partner()
        self.second = make_partner("DGP002")

    def test_set_participants_replaces_targets(self):
        RunningProgramTarget.objects.create(program=self.program, partner=self.first, progress=50)
        result = set_participants(self.program, ["DGP002", "UNKNOWN"])

        self.assertEqual(result.success, 1)
        self.assertEqual(result.failed, 1)
        targets = list(self.program.targets.values_list("partner_id", "progress"))
        self.assertEqual(targets, [("DGP002", 0)])

    def test_progress_upload_never_enrolls(self):
        RunningProgramTarget.objects.create(program=self.program, partner=self.first)
        upload = build_xlsx(
            [
                {"id_digipos": "DGP001", "progress": "80"},
                {"id_digipos": "DGP002", "progress": "50"},
                {"id_digipos": "DGP001", "progress": "150"},
            ]
        )
        result = import_progress(self.program, upload)

        self.assertEqual(result.success, 1)
        self.assertEqual(result.failed, 2)
        self.assertEqual(self.program.targets.get(partner=self.first).progress, 80)
        self.assertFalse(self.program.targets.filter(partner=self.second).exists())

    def test_update_progress_json(self):
        RunningProgramTarget.objects.create(program=self.program, partner=self.first)
        result = update_progress(self.program, [{"id_digipos": "DGP001", "progress": 100}])
        self.assertEqual(result.as_dict(), {"success": 1, "failed": 0, "errors": []})


class SpecialNumberImportTests(TestCase):
    def test_duplicates_are_row_failures(self):
        SpecialNumber.objects.create(phone_number="0811111", price=Decimal("50000"))
        upload = build_xlsx(
            [
                {"nomor": "0811111", "harga": "75000", "sn": "", "lokasi": ""},
                {"nomor": "0812222", "harga": "100000", "sn": "SN1", "lokasi": "Kupang"},
                {"nomor": "0812222", "harga": "100000", "sn": "SN2", "lokasi": "Kupang"},
                {"nomor": "0813333", "harga": "murah", "sn": "", "lokasi": ""},
            ]
        )
        result = import_special_numbers(upload)

        self.assertEqual(result.success, 1)
        self.assertEqual(result.failed, 3)
        number = SpecialNumber.objects.get(phone_number="0812222")
        self.assertEqual(number.sn, "SN1")
        self.assertEqual(number.lokasi, "Kupang")

    def test_price_wider_than_column_is_row_failure(self):
        upload = build_xlsx([{"nomor": "0814444", "harga": "1e15"}, {"nomor": "0815555", "harga": "-5"}])
        result = import_special_numbers(upload)

        self.assertEqual(result.success, 0)
        self.assertEqual(result.errors, ["Baris 2: harga tidak valid", "Baris 3: harga tidak valid"])
        self.assertFalse(SpecialNumber.objects.exists())


class RegistrationServiceTests(TestCase):
    def setUp(self):
        self.master = DigiposMaster.objects.create(
            id_digipos="M001",
            no_rs="RS-01",
            nama_outlet="Cell Jaya",
            tap="TAP Kupang",
            salesforce="Andi",
        )

    def test_register_partner(self):
        user = register_partner("M001", "rahasia", owner="Budi", phone="0812")

        self.assertEqual(user.role, UserRole.PELANGGAN)
        self.assertEqual(user.nama, "Cell Jaya")
        self.assertTrue(user.check_password("rahasia"))
        partner = user.partner
        self.assertEqual(partner.level, "Bronze")
        self.assertEqual(partner.points, 0)
        self.assertEqual(partner.no_rs, "RS-01")
        self.assertEqual(partner.salesforce, "Andi")
        self.master.refresh_from_db()
        self.assertTrue(self.master.is_registered)

    def test_second_registration_fails_without_changes(self):
        register_partner("M001", "rahasia")
        with self.assertRaises(AlreadyRegistered):
            register_partner("M001", "lainnya")
        self.assertEqual(User.objects.filter(username="M001").count(), 1)

    def test_unknown_location_rejected(self):
        Location.objects.create(kabupaten="Kupang", kecamatan="Alak")
        with self.assertRaises(LoyaltyError):
            register_partner("M001", "rahasia", kabupaten="Kupang", kecamatan="Oebobo")
        self.assertFalse(User.objects.filter(username="M001").exists())
        self.master.refresh_from_db()
        self.assertFalse(self.master.is_registered)

    def test_lookup(self):
        self.assertEqual(lookup_digipos("M001"), self.master)
        with self.assertRaises(DigiposNotFound):
            lookup_digipos("M999")
        register_partner("M001", "rahasia")
        with self.assertRaises(AlreadyRegistered):
            lookup_digipos("M001")


class NotificationTests(TestCase):
    def setUp(self):
        WhatsAppSettings.objects.filter(id=1).update(
            is_active=True,
            webhook_url="https://api.fonnte.com/send",
            recipient_id="08123456789",
        )

    @override_settings(FONNTE_TOKEN="token-123")
    def test_message_posted_to_gateway(self):
        with mock.patch("loyalty.notifications.requests.post") as post:
            self.assertTrue(send_whatsapp_message("Halo"))
        post.assert_called_once_with(
            "https://api.fonnte.com/send",
            headers={"Authorization": "token-123"},
            data={"target": "08123456789", "message": "Halo"},
            timeout=10,
        )

    def test_inactive_settings_send_nothing(self):
        WhatsAppSettings.objects.filter(id=1).update(is_active=False)
        with mock.patch("loyalty.notifications.requests.post") as post:
            self.assertFalse(send_whatsapp_message("Halo"))
        post.assert_not_called()

    def test_gateway_failure_is_swallowed(self):
        with mock.patch("loyalty.notifications.requests.post", side_effect=requests.ConnectionError):
            self.assertFalse(send_whatsapp_message("Halo"))


@override_settings(MEDIA_ROOT=MEDIA_ROOT)
class LoyaltyApiTests(TestCase):
    @classmethod
    def tearDownClass(cls):
        shutil.rmtree(MEDIA_ROOT, ignore_errors=True)
        super().tearDownClass()

    def setUp(self):
        self.admin = make_staff()
        self.operator = make_staff("operator-user", UserRole.OPERATOR)
        self.supervisor = make_staff("supervisor-user", UserRole.SUPERVISOR)
        self.partner = make_partner(points=3000)
        self.other = make_partner("DGP002", points=10)
        self.client = APIClient()

    def test_operator_adds_transaction(self):
        self.client.force_authenticate(self.operator)
        response = self.client.post(
            reverse("transactions-list"),
            data={"id_digipos": "DGP001", "date": "2024-05-01", "produk": "Perdana", "harga": "98000", "kuantiti": 10},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["points_earned"], 980)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 3980)

    def test_oversized_transaction_is_400_and_creates_nothing(self):
        self.client.force_authenticate(self.operator)
        for harga, kuantiti in [("999999999999.99", 100000), ("1000", 10**10)]:
            response = self.client.post(
                reverse("transactions-list"),
                data={"id_digipos": "DGP001", "date": "2024-05-01", "produk": "Perdana", "harga": harga, "kuantiti": kuantiti},
                format="json",
            )
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.assertEqual(Transaction.objects.count(), 0)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 3000)

    def test_bootstrap_still_renders_after_oversized_import_row(self):
        import_transactions(
            build_xlsx(
                [
                    {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "1e15", "kuantiti": "1"},
                    {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Voucher", "harga": "5000", "kuantiti": "1"},
                ]
            )
        )
        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse("bootstrap"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["produk"] for row in response.data["transactions"]], ["Voucher"])

    def test_transaction_for_unknown_partner_is_404(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("transactions-list"),
            data={"id_digipos": "NOPE", "date": "2024-05-01", "produk": "Perdana", "harga": "1000", "kuantiti": 1},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_partner_cannot_add_transaction_and_sees_own_only(self):
        add_transaction("DGP001", date(2024, 5, 1), "Perdana", Decimal("1000"), 1)
        add_transaction("DGP002", date(2024, 5, 1), "Perdana", Decimal("1000"), 1)
        self.client.force_authenticate(self.partner.user)

        response = self.client.post(
            reverse("transactions-list"),
            data={"id_digipos": "DGP001", "date": "2024-05-01", "produk": "Perdana", "harga": "1000", "kuantiti": 1},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        response = self.client.get(reverse("transactions-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id_digipos"] for row in response.data], ["DGP001"])

    def test_transaction_bulk_upload(self):
        self.client.force_authenticate(self.operator)
        upload = build_xlsx(
            [
                {"tanggal": "2024-05-01", "id_digipos": "DGP001", "produk": "Perdana", "harga": "10000", "kuantiti": "1"},
                {"tanggal": "2024-05-01", "id_digipos": "NOPE", "produk": "Perdana", "harga": "10000", "kuantiti": "1"},
            ]
        )
        response = self.client.post(reverse("transactions-bulk-upload"), data={"file": upload}, format="multipart")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["success"], 1)
        self.assertEqual(response.data["failed"], 1)

    def test_bulk_upload_without_file(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse("transactions-bulk-upload"), data={}, format="multipart")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_transaction_export(self):
        add_transaction("DGP001", date(2024, 5, 1), "Perdana", Decimal("1000"), 3)
        self.client.force_authenticate(self.supervisor)
        response = self.client.get(reverse("transactions-export"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response["Content-Type"], XLSX_CONTENT_TYPE)
        df = pd.read_excel(io.BytesIO(response.content), dtype=str)
        self.assertEqual(list(df["id_digipos"]), ["DGP001"])

    def test_partner_redeems_reward(self):
        reward = Reward.objects.create(name="Kaos", points=2500, stock=1)
        self.client.force_authenticate(self.partner.user)
        response = self.client.post(reverse("redemptions-list"), data={"reward_id": reward.pk}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["status"], RedemptionStatus.DIAJUKAN)

        response = self.client.post(reverse("redemptions-list"), data={"reward_id": reward.pk}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.partner.refresh_from_db()
        self.assertEqual(self.partner.points, 500)

    def test_partner_sees_only_own_redemptions(self):
        reward = Reward.objects.create(name="Pulsa", points=5, stock=5)
        redeem_reward("DGP001", reward.pk)
        redeem_reward("DGP002", reward.pk)
        self.client.force_authenticate(self.other.user)
        response = self.client.get(reverse("redemptions-list"))
        self.assertEqual([row["id_digipos"] for row in response.data], ["DGP002"])

    def test_admin_completes_redemption_with_photo(self):
        reward = Reward.objects.create(name="Kaos", points=100, stock=1)
        redemption = redeem_reward("DGP001", reward.pk)
        self.client.force_authenticate(self.admin)
        url = reverse("redemptions-update-status", kwargs={"pk": redemption.pk})

        response = self.client.post(url, data={"status": "Selesai"}, format="multipart")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(
            url,
            data={"status": "Selesai", "note": "Diterima", "photo": png_upload()},
            format="multipart",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        redemption.refresh_from_db()
        self.assertEqual(redemption.status, RedemptionStatus.SELESAI)
        self.assertTrue(redemption.documentation_photo.name.startswith("redemptions/"))

    def test_status_update_rejects_non_image(self):
        reward = Reward.objects.create(name="Kaos", points=100, stock=1)
        redemption = redeem_reward("DGP001", reward.pk)
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("redemptions-update-status", kwargs={"pk": redemption.pk}),
            data={"status": "Selesai", "photo": SimpleUploadedFile("doc.exe", b"MZ")},
            format="multipart",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_partner_cannot_update_redemption_status(self):
        reward = Reward.objects.create(name="Kaos", points=100, stock=1)
        redemption = redeem_reward("DGP001", reward.pk)
        self.client.force_authenticate(self.partner.user)
        response = self.client.post(
            reverse("redemptions-update-status", kwargs={"pk": redemption.pk}),
            data={"status": "Ditolak"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_rewards_are_public_and_admin_managed(self):
        Reward.objects.create(name="Kaos", points=100, stock=1)
        response = self.client.get(reverse("rewards-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

        self.client.force_authenticate(self.supervisor)
        response = self.client.post(reverse("rewards-list"), data={"name": "Topi", "points": 50, "stock": 2}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse("rewards-list"), data={"name": "Topi", "points": 50, "stock": 2}, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_reward_reorder_and_photo(self):
        first = Reward.objects.create(name="A", points=100, stock=1, sort_order=0)
        second = Reward.objects.create(name="B", points=200, stock=1, sort_order=1)
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse("rewards-reorder"), data={"ids": [second.pk, first.pk]}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["id"] for row in response.data], [second.pk, first.pk])

        response = self.client.post(
            reverse("rewards-photo", kwargs={"pk": first.pk}),
            data={"photo": png_upload("reward.png")},
            format="multipart",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        first.refresh_from_db()
        self.assertTrue(first.image.name.startswith("rewards/"))

    def test_loyalty_program_update_and_simulate(self):
        response = self.client.get(reverse("loyalty-programs-simulate"), data={"amount": "98000", "level": "Gold"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["points"], 117)

        self.client.force_authenticate(self.admin)
        response = self.client.patch(
            reverse("loyalty-programs-detail", kwargs={"level": "Gold"}),
            data={"multiplier": "2.00"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(LoyaltyProgram.objects.get(level="Gold").multiplier, Decimal("2.00"))

    def test_loyalty_programs_cannot_be_created(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(reverse("loyalty-programs-list"), data={"level": "Diamond"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_running_program_participants_and_progress(self):
        program = RunningProgram.objects.create(name="Juli", start_date=date(2024, 7, 1), end_date=date(2024, 7, 31))
        self.client.force_authenticate(self.admin)

        upload = build_xlsx([{"id_digipos": "DGP001"}, {"id_digipos": "DGP002"}, {"id_digipos": "X"}])
        response = self.client.post(
            reverse("running-programs-participants-upload", kwargs={"pk": program.pk}),
            data={"file": upload},
            format="multipart",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["success"], 2)
        self.assertEqual(response.data["failed"], 1)

        response = self.client.post(
            reverse("running-programs-progress", kwargs={"pk": program.pk}),
            data={"items": [{"id_digipos": "DGP002", "progress": 40}]},
            format="json",
        )
        self.assertEqual(response.data["success"], 1)
        self.assertEqual(program.targets.get(partner_id="DGP002").progress, 40)

    def test_running_program_dates_validated(self):
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("running-programs-list"),
            data={"name": "Salah", "start_date": "2024-07-31", "end_date": "2024-07-01"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_raffle_activation_and_draw(self):
        old = RaffleProgram.objects.create(name="Lama", is_active=True)
        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("raffle-programs-list"),
            data={"name": "Baru", "prize": "HP", "is_active": True},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        old.refresh_from_db()
        self.assertFalse(old.is_active)

        raffle_id = response.data["id"]
        response = self.client.post(reverse("raffle-programs-draw", kwargs={"pk": raffle_id}))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        CouponRedemption.objects.create(partner=self.partner, raffle_program_id=raffle_id)
        response = self.client.post(reverse("raffle-programs-draw", kwargs={"pk": raffle_id}))
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["partner"], "DGP001")

        response = self.client.get(reverse("raffle-programs-participants", kwargs={"pk": raffle_id}))
        self.assertEqual(response.data, [{"id_digipos": "DGP001", "nama": "Outlet DGP001", "coupons": 1}])

    def test_special_numbers(self):
        self.client.force_authenticate(self.operator)
        upload = build_xlsx([{"nomor": "0811000", "harga": "150000"}, {"nomor": "0811000", "harga": "150000"}])
        response = self.client.post(reverse("special-numbers-bulk-upload"), data={"file": upload}, format="multipart")
        self.assertEqual(response.data["success"], 1)
        self.assertEqual(response.data["failed"], 1)

        number = SpecialNumber.objects.get(phone_number="0811000")
        response = self.client.post(reverse("special-numbers-set-status", kwargs={"pk": number.pk}), data={"is_sold": True}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["is_sold"])

        self.client.force_authenticate(None)
        response = self.client.get(reverse("special-numbers-list"), data={"is_sold": "false"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [])

    def test_whatsapp_settings(self):
        self.client.force_authenticate(self.supervisor)
        response = self.client.get(reverse("whatsapp-settings-list"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.post(reverse("whatsapp-settings-list"), data={"recipient_id": "120363"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.post(
            reverse("whatsapp-settings-list"),
            data={"recipient_type": "group", "recipient_id": "120363"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        wa_settings = WhatsAppSettings.get_solo()
        self.assertEqual(wa_settings.recipient_type, "group")
        self.assertEqual(wa_settings.recipient_id, "120363")

    def test_bootstrap_scopes_partner_data(self):
        add_transaction("DGP001", date(2024, 5, 1), "Perdana", Decimal("1000"), 1)
        add_transaction("DGP002", date(2024, 5, 1), "Perdana", Decimal("1000"), 1)

        self.client.force_authenticate(self.partner.user)
        response = self.client.get(reverse("bootstrap"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([row["username"] for row in response.data["users"]], ["DGP001"])
        self.assertEqual(len(response.data["transactions"]), 1)
        self.assertEqual(len(response.data["loyalty_programs"]), 4)
        self.assertNotIn("whatsapp_settings", response.data)

        self.client.force_authenticate(self.admin)
        response = self.client.get(reverse("bootstrap"))
        self.assertEqual(len(response.data["transactions"]), 2)
        self.assertIn("whatsapp_settings", response.data)

    def test_bootstrap_requires_login(self):
        response = self.client.get(reverse("bootstrap"))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_digipos_lookup(self):
        DigiposMaster.objects.create(id_digipos="M001", nama_outlet="Cell Jaya", no_rs="RS1")
        DigiposMaster.objects.create(id_digipos="DGP001", nama_outlet="Sudah", is_registered=True)

        response = self.client.get(reverse("digipos-lookup", kwargs={"id_digipos": "M001"}))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["nama_outlet"], "Cell Jaya")

        response = self.client.get(reverse("digipos-lookup", kwargs={"id_digipos": "M404"}))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.get(reverse("digipos-lookup", kwargs={"id_digipos": "DGP001"}))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
