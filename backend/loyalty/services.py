import logging
import random
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, F, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from users.models import UserRole

from .exceptions import (
    AlreadyRegistered,
    DigiposNotFound,
    InsufficientPoints,
    LevelNotFound,
    LoyaltyError,
    NoCoupons,
    OutOfStock,
    PartnerNotFound,
    RewardNotFound,
)
from .models import (
    DEFAULT_LEVEL,
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
    RunningProgramTarget,
    SpecialNumber,
    Transaction,
)
from .notifications import notify_redemption_created, notify_redemption_status
from .spreadsheets import parse_date, parse_decimal, parse_int, read_spreadsheet, write_spreadsheet

logger = logging.getLogger(__name__)

DEFAULT_MULTIPLIER = Decimal("1.0")
POINTS_DIVISOR = Decimal("1000")

# Upper bound of the integer columns holding quantities and point balances.
MAX_INTEGER = 2_147_483_647

ADJUST_ADD = "tambah"
ADJUST_SUBTRACT = "kurang"

TRANSACTION_COLUMNS = ["tanggal", "id_digipos", "produk", "harga", "kuantiti"]
PARTICIPANT_COLUMNS = ["id_digipos"]
PROGRESS_COLUMNS = ["id_digipos", "progress"]
SPECIAL_NUMBER_COLUMNS = ["nomor", "harga"]


@dataclass
class ImportResult:
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def fail(self, line: int, message: str) -> None:
        self.failed += 1
        self.errors.append(f"Baris {line}: {message}")

    def as_dict(self) -> dict:
        return {"success": self.success, "failed": self.failed, "errors": self.errors}


def _log_audit(action, user=None, partner=None, metadata=None):
    AuditLog.objects.create(
        action=action,
        user=user if user is not None and user.is_authenticated else None,
        partner=partner,
        metadata=metadata or {},
    )


def _lock_partner(partner_id) -> Partner:
    try:
        return Partner.objects.select_for_update().get(pk=partner_id)
    except Partner.DoesNotExist:
        raise PartnerNotFound(f"Partner {partner_id} not found") from None


def _clean(value) -> str:
    return str(value if value is not None else "").strip()


def _fit_column(value: Decimal, model, field_name: str) -> Decimal | None:
    """Round ``value`` to the column's scale; None when negative or too wide for it."""
    column = model._meta.get_field(field_name)
    limit = Decimal(10) ** (column.max_digits - column.decimal_places)
    if value < 0 or value >= limit:
        return None
    value = value.quantize(Decimal(1).scaleb(-column.decimal_places), rounding=ROUND_HALF_UP)
    return value if value < limit else None


# === Points ===

def get_multiplier(level: str, multipliers: dict | None = None) -> Decimal:
    """Multiplier of a tier; levels without a LoyaltyProgram row earn the default rate."""
    if multipliers is None:
        multiplier = LoyaltyProgram.objects.filter(level=level).values_list("multiplier", flat=True).first()
    else:
        multiplier = multipliers.get(level)
    if multiplier is None:
        return DEFAULT_MULTIPLIER
    return Decimal(multiplier)


def calculate_points(total_pembelian, multiplier) -> int:
    points = (Decimal(total_pembelian) / POINTS_DIVISOR) * Decimal(multiplier)
    return int(points.to_integral_value(rounding=ROUND_FLOOR))


def transaction_total(harga, kuantiti: int) -> tuple[Decimal, Decimal]:
    """Return ``(harga, total_pembelian)`` as they will be stored."""
    harga = _fit_column(Decimal(harga), Transaction, "harga")
    if harga is None:
        raise LoyaltyError("harga tidak valid")
    if not 1 <= kuantiti <= MAX_INTEGER:
        raise LoyaltyError("kuantiti tidak valid")
    total = _fit_column(harga * kuantiti, Transaction, "total_pembelian")
    if total is None:
        raise LoyaltyError("total pembelian melebihi batas")
    return harga, total


def _earned_points(total, multiplier) -> int:
    points = calculate_points(total, multiplier)
    if points > MAX_INTEGER:
        raise LoyaltyError("poin transaksi melebihi batas")
    return points


def simulate_points(amount, level: str) -> dict:
    multiplier = get_multiplier(level)
    return {
        "level": level,
        "multiplier": multiplier,
        "points": calculate_points(amount, multiplier),
    }


@transaction.atomic
def add_transaction(partner_id, date, produk: str, harga, kuantiti: int) -> Transaction:
    partner = _lock_partner(partner_id)
    harga, total = transaction_total(harga, kuantiti)
    points = _earned_points(total, get_multiplier(partner.level))
    if partner.points + points > MAX_INTEGER:
        raise LoyaltyError("saldo poin melebihi batas")

    trx = Transaction.objects.create(
        partner=partner,
        date=date,
        produk=produk,
        harga=harga,
        kuantiti=kuantiti,
        total_pembelian=total,
        points_earned=points,
    )
    Partner.objects.filter(pk=partner.pk).update(points=F("points") + points)
    logger.info("Transaction %s for %s earned %s points", trx.pk, partner.pk, points)
    return trx


def import_transactions(upload) -> ImportResult:
    rows = read_spreadsheet(upload, TRANSACTION_COLUMNS)
    multipliers = dict(LoyaltyProgram.objects.values_list("level", "multiplier"))
    levels = dict(Partner.objects.values_list("digipos_id", "level"))
    result = ImportResult()

    with transaction.atomic():
        for index, row in enumerate(rows):
            line = index + 2
            digipos_id = _clean(row["id_digipos"])
            produk = _clean(row["produk"])
            trx_date = parse_date(row["tanggal"])
            harga = parse_decimal(row["harga"])
            kuantiti = parse_int(row["kuantiti"])

            if digipos_id not in levels:
                result.fail(line, f"ID Digipos '{digipos_id}' tidak ditemukan")
                continue
            if trx_date is None:
                result.fail(line, "tanggal tidak valid")
                continue
            if not produk:
                result.fail(line, "produk kosong")
                continue
            if harga is None:
                result.fail(line, "harga tidak valid")
                continue
            if kuantiti is None:
                result.fail(line, "kuantiti tidak valid")
                continue
            try:
                harga, total = transaction_total(harga, kuantiti)
                points = _earned_points(total, get_multiplier(levels[digipos_id], multipliers))
            except LoyaltyError as exc:
                result.fail(line, str(exc))
                continue

            Transaction.objects.create(
                partner_id=digipos_id,
                date=trx_date,
                produk=produk,
                harga=harga,
                kuantiti=kuantiti,
                total_pembelian=total,
                points_earned=points,
            )
            Partner.objects.filter(pk=digipos_id).update(points=F("points") + points)
            result.success += 1

    logger.info("Transaction import finished: %s imported, %s failed", result.success, result.failed)
    return result


# === Redemptions ===

@transaction.atomic
def redeem_reward(partner_id, reward_id, points_spent=None, is_kupon: bool = False) -> Redemption:
    partner = _lock_partner(partner_id)
    try:
        reward = Reward.objects.select_for_update().get(pk=reward_id)
    except Reward.DoesNotExist:
        raise RewardNotFound() from None

    cost = reward.points
    if points_spent is not None and int(points_spent) != cost:
        raise LoyaltyError("points_spent does not match the reward cost")
    if partner.points < cost:
        raise InsufficientPoints(f"Insufficient points: {partner.points} available, {cost} needed")
    if reward.stock <= 0:
        raise OutOfStock()

    redemption = Redemption.objects.create(
        partner=partner,
        reward=reward,
        user_name=partner.user.nama or partner.user.username,
        reward_name=reward.name,
        points_spent=cost,
        status=RedemptionStatus.DIAJUKAN,
    )

    updates = {"points": F("points") - cost}
    raffle = RaffleProgram.get_active() if is_kupon else None
    if raffle is not None:
        CouponRedemption.objects.create(partner=partner, raffle_program=raffle, redemption=redemption)
        updates["kupon_undian"] = F("kupon_undian") + 1
    Partner.objects.filter(pk=partner.pk).update(**updates)
    Reward.objects.filter(pk=reward.pk).update(stock=F("stock") - 1)

    logger.info("Partner %s redeemed reward %s for %s points", partner.pk, reward.pk, cost)
    transaction.on_commit(lambda: notify_redemption_created(redemption))
    return redemption


@transaction.atomic
def update_redemption_status(redemption: Redemption, status: str, note=None, photo=None, user=None) -> Redemption:
    if status not in RedemptionStatus.values:
        raise LoyaltyError(f"Invalid status '{status}'")
    if status == RedemptionStatus.SELESAI and not (photo or redemption.documentation_photo):
        raise LoyaltyError("A documentation photo is required to complete a redemption")

    previous = redemption.status
    redemption.status = status
    if note is not None:
        redemption.status_note = note
    if photo:
        redemption.documentation_photo = photo
    redemption.status_updated_at = timezone.now()
    redemption.save()

    _log_audit(
        AuditAction.REDEMPTION_STATUS,
        user,
        partner=redemption.partner,
        metadata={"redemption_id": redemption.pk, "from": previous, "to": status},
    )
    transaction.on_commit(lambda: notify_redemption_status(redemption))
    return redemption


@transaction.atomic
def reorder_rewards(reward_ids: list[int]) -> None:
    rewards = Reward.objects.in_bulk(reward_ids)
    missing = [reward_id for reward_id in reward_ids if reward_id not in rewards]
    if missing:
        raise RewardNotFound(f"Unknown reward ids: {', '.join(str(i) for i in missing)}")
    for position, reward_id in enumerate(reward_ids):
        Reward.objects.filter(pk=reward_id).update(sort_order=position)


# === Admin balance operations ===

@transaction.atomic
def adjust_points(partner_id, amount, action: str, user=None) -> int:
    if action not in (ADJUST_ADD, ADJUST_SUBTRACT):
        raise LoyaltyError(f"action must be '{ADJUST_ADD}' or '{ADJUST_SUBTRACT}'")
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise LoyaltyError("amount must be a positive integer") from None
    if amount <= 0:
        raise LoyaltyError("amount must be a positive integer")

    partner = _lock_partner(partner_id)
    if action == ADJUST_ADD:
        new_points = F("points") + amount
    else:
        new_points = Greatest(Value(0), F("points") - amount)
    Partner.objects.filter(pk=partner.pk).update(points=new_points)
    partner.refresh_from_db(fields=["points"])

    _log_audit(
        AuditAction.ADJUST_POINTS,
        user,
        partner=partner,
        metadata={"action": action, "amount": amount, "points": partner.points},
    )
    logger.info("Points of %s adjusted (%s %s), balance %s", partner.pk, action, amount, partner.points)
    return partner.points


@transaction.atomic
def change_level(partner_id, level: str, user=None) -> Partner:
    if not LoyaltyProgram.objects.filter(level=level).exists():
        raise LevelNotFound(f"Level '{level}' not found")
    partner = _lock_partner(partner_id)
    previous = partner.level
    partner.level = level
    partner.save(update_fields=["level", "updated_at"])
    _log_audit(
        AuditAction.CHANGE_LEVEL,
        user,
        partner=partner,
        metadata={"from": previous, "to": level},
    )
    return partner


# === Registration ===

def lookup_digipos(id_digipos: str) -> DigiposMaster:
    master = DigiposMaster.objects.filter(pk=id_digipos).first()
    if master is None:
        raise DigiposNotFound()
    if master.is_registered or get_user_model().objects.filter(username=id_digipos).exists():
        raise AlreadyRegistered()
    return master


@transaction.atomic
def register_partner(
    id_digipos: str,
    password: str,
    email: str = "",
    phone: str = "",
    owner: str = "",
    kabupaten: str = "",
    kecamatan: str = "",
    alamat: str = "",
):
    User = get_user_model()
    master = DigiposMaster.objects.select_for_update().filter(pk=id_digipos).first()
    if User.objects.filter(username=id_digipos).exists():
        raise AlreadyRegistered("A user with this Digipos ID already exists")
    if master is None:
        raise DigiposNotFound()
    if master.is_registered:
        raise AlreadyRegistered()
    if Location.objects.exists() and not Location.objects.filter(kabupaten=kabupaten, kecamatan=kecamatan).exists():
        raise LoyaltyError("Unknown kabupaten/kecamatan combination")

    user = User.objects.create_user(
        username=id_digipos,
        password=password,
        email=email,
        role=UserRole.PELANGGAN,
        nama=master.nama_outlet,
        phone=phone,
        tap=master.tap,
    )
    Partner.objects.create(
        digipos_id=id_digipos,
        user=user,
        level=DEFAULT_LEVEL,
        owner=owner,
        kabupaten=kabupaten,
        kecamatan=kecamatan,
        salesforce=master.salesforce,
        no_rs=master.no_rs,
        alamat=alamat,
    )
    master.is_registered = True
    master.save(update_fields=["is_registered"])
    logger.info("Partner %s registered", id_digipos)
    return user


# === Running program participants and progress ===

def _replace_participants(program, entries) -> ImportResult:
    result = ImportResult()
    ids = [_clean(partner_id) for _, partner_id in entries]
    known = set(Partner.objects.filter(pk__in=ids).values_list("pk", flat=True))
    program.targets.all().delete()

    targets = []
    seen = set()
    for line, partner_id in entries:
        partner_id = _clean(partner_id)
        if not partner_id:
            result.fail(line, "id_digipos kosong")
            continue
        if partner_id not in known:
            result.fail(line, f"ID Digipos '{partner_id}' tidak ditemukan")
            continue
        if partner_id in seen:
            result.fail(line, f"ID Digipos '{partner_id}' duplikat")
            continue
        seen.add(partner_id)
        targets.append(RunningProgramTarget(program=program, partner_id=partner_id, progress=0))
    RunningProgramTarget.objects.bulk_create(targets)
    result.success = len(targets)
    return result


@transaction.atomic
def set_participants(program, partner_ids) -> ImportResult:
    return _replace_participants(program, [(index + 1, pid) for index, pid in enumerate(partner_ids)])


def import_participants(program, upload) -> ImportResult:
    rows = read_spreadsheet(upload, PARTICIPANT_COLUMNS)
    with transaction.atomic():
        return _replace_participants(program, [(index + 2, row["id_digipos"]) for index, row in enumerate(rows)])


def _apply_progress(program, entries) -> ImportResult:
    result = ImportResult()
    targets = {target.partner_id: target for target in program.targets.select_for_update()}
    for line, partner_id, raw_progress in entries:
        partner_id = _clean(partner_id)
        target = targets.get(partner_id)
        if target is None:
            result.fail(line, f"ID Digipos '{partner_id}' bukan peserta program")
            continue
        progress = parse_int(raw_progress)
        if progress is None or not 0 <= progress <= 100:
            result.fail(line, "progress harus angka 0-100")
            continue
        target.progress = progress
        target.save(update_fields=["progress"])
        result.success += 1
    return result


@transaction.atomic
def update_progress(program, items) -> ImportResult:
    entries = [
        (index + 1, item.get("id_digipos"), item.get("progress"))
        for index, item in enumerate(items)
    ]
    return _apply_progress(program, entries)


def import_progress(program, upload) -> ImportResult:
    rows = read_spreadsheet(upload, PROGRESS_COLUMNS)
    entries = [(index + 2, row["id_digipos"], row["progress"]) for index, row in enumerate(rows)]
    with transaction.atomic():
        return _apply_progress(program, entries)


# === Raffles ===

def raffle_participants(raffle: RaffleProgram) -> list[dict]:
    rows = (
        raffle.coupons.values("partner_id", "partner__user__nama")
        .annotate(coupons=Count("id"))
        .order_by("-coupons", "partner_id")
    )
    return [
        {"id_digipos": row["partner_id"], "nama": row["partner__user__nama"], "coupons": row["coupons"]}
        for row in rows
    ]


@transaction.atomic
def draw_winner(raffle: RaffleProgram, user=None) -> RaffleWinner:
    """Every coupon is one ticket, so partners with more coupons are more likely to win."""
    tickets = list(raffle.coupons.values_list("partner_id", flat=True))
    if not tickets:
        raise NoCoupons()

    partner = Partner.objects.select_related("user").get(pk=random.choice(tickets))
    winner = RaffleWinner.objects.create(
        name=partner.user.nama or partner.user.username,
        prize=raffle.prize,
        period=raffle.period,
        partner=partner,
        raffle_program=raffle,
    )
    _log_audit(
        AuditAction.DRAW_WINNER,
        user,
        partner=partner,
        metadata={"raffle_program_id": raffle.pk, "winner_id": winner.pk, "tickets": len(tickets)},
    )
    logger.info("Raffle %s drawn, winner %s out of %s tickets", raffle.pk, partner.pk, len(tickets))
    return winner


# === Special numbers ===

def import_special_numbers(upload) -> ImportResult:
    rows = read_spreadsheet(upload, SPECIAL_NUMBER_COLUMNS)
    existing = set(SpecialNumber.objects.values_list("phone_number", flat=True))
    result = ImportResult()

    with transaction.atomic():
        for index, row in enumerate(rows):
            line = index + 2
            nomor = _clean(row["nomor"])
            price = parse_decimal(row["harga"])
            if price is not None:
                price = _fit_column(price, SpecialNumber, "price")
            if not nomor:
                result.fail(line, "nomor kosong")
                continue
            if nomor in existing:
                result.fail(line, f"nomor {nomor} sudah ada")
                continue
            if price is None:
                result.fail(line, "harga tidak valid")
                continue
            SpecialNumber.objects.create(
                phone_number=nomor,
                price=price,
                sn=_clean(row.get("sn")),
                lokasi=_clean(row.get("lokasi")),
            )
            existing.add(nomor)
            result.success += 1

    logger.info("Special number import finished: %s imported, %s failed", result.success, result.failed)
    return result


# === Exports ===

def export_users() -> bytes:
    rows = []
    for user in get_user_model().objects.select_related("partner").order_by("username"):
        partner = getattr(user, "partner", None)
        rows.append(
            {
                "username": user.username,
                "nama": user.nama,
                "role": user.role,
                "email": user.email,
                "phone": user.phone,
                "tap": user.tap,
                "jabatan": user.jabatan,
                "is_active": user.is_active,
                "points": partner.points if partner else "",
                "level": partner.level if partner else "",
                "kupon_undian": partner.kupon_undian if partner else "",
                "owner": partner.owner if partner else "",
                "kabupaten": partner.kabupaten if partner else "",
                "kecamatan": partner.kecamatan if partner else "",
                "salesforce": partner.salesforce if partner else "",
                "no_rs": partner.no_rs if partner else "",
                "alamat": partner.alamat if partner else "",
            }
        )
    return write_spreadsheet(rows, "Users")


def export_transactions(queryset=None) -> bytes:
    queryset = queryset if queryset is not None else Transaction.objects.all()
    rows = [
        {
            "tanggal": trx.date.isoformat(),
            "id_digipos": trx.partner_id,
            "produk": trx.produk,
            "harga": float(trx.harga),
            "kuantiti": trx.kuantiti,
            "total_pembelian": float(trx.total_pembelian),
            "points_earned": trx.points_earned,
        }
        for trx in queryset
    ]
    return write_spreadsheet(rows, "Transactions")
