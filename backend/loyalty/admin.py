from django.contrib import admin

from .models import (
    AuditLog,
    CouponRedemption,
    DigiposMaster,
    Location,
    LoyaltyProgram,
    Partner,
    RaffleProgram,
    RaffleWinner,
    Redemption,
    Reward,
    RunningProgram,
    RunningProgramTarget,
    SpecialNumber,
    Transaction,
    WhatsAppSettings,
)


@admin.register(Partner)
class PartnerAdmin(admin.ModelAdmin):
    list_display = ("digipos_id", "user", "level", "points", "kupon_undian", "kabupaten")
    search_fields = ("digipos_id", "user__nama", "owner", "no_rs")
    list_filter = ("level", "kabupaten")


@admin.register(DigiposMaster)
class DigiposMasterAdmin(admin.ModelAdmin):
    list_display = ("id_digipos", "nama_outlet", "no_rs", "tap", "salesforce", "is_registered")
    search_fields = ("id_digipos", "nama_outlet", "no_rs")
    list_filter = ("is_registered", "tap")


@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    list_display = ("kabupaten", "kecamatan")
    search_fields = ("kabupaten", "kecamatan")


@admin.register(LoyaltyProgram)
class LoyaltyProgramAdmin(admin.ModelAdmin):
    list_display = ("level", "points_needed", "multiplier")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ("partner", "date", "produk", "kuantiti", "total_pembelian", "points_earned")
    search_fields = ("partner__digipos_id", "produk")
    list_filter = ("date",)


@admin.register(Reward)
class RewardAdmin(admin.ModelAdmin):
    list_display = ("name", "points", "stock", "sort_order")
    search_fields = ("name",)


@admin.register(Redemption)
class RedemptionAdmin(admin.ModelAdmin):
    list_display = ("reward_name", "user_name", "points_spent", "status", "date")
    search_fields = ("reward_name", "user_name", "partner__digipos_id")
    list_filter = ("status", "date")


class RunningProgramTargetInline(admin.TabularInline):
    model = RunningProgramTarget
    extra = 0


@admin.register(RunningProgram)
class RunningProgramAdmin(admin.ModelAdmin):
    list_display = ("name", "start_date", "end_date", "prize")
    inlines = [RunningProgramTargetInline]


@admin.register(RaffleProgram)
class RaffleProgramAdmin(admin.ModelAdmin):
    list_display = ("name", "prize", "period", "is_active")
    list_filter = ("is_active",)


@admin.register(CouponRedemption)
class CouponRedemptionAdmin(admin.ModelAdmin):
    list_display = ("partner", "raffle_program", "redemption", "redeemed_at")
    list_filter = ("raffle_program",)


@admin.register(RaffleWinner)
class RaffleWinnerAdmin(admin.ModelAdmin):
    list_display = ("name", "prize", "period", "raffle_program", "created_at")


@admin.register(SpecialNumber)
class SpecialNumberAdmin(admin.ModelAdmin):
    list_display = ("phone_number", "price", "is_sold", "sn", "lokasi")
    search_fields = ("phone_number", "sn")
    list_filter = ("is_sold", "lokasi")


@admin.register(WhatsAppSettings)
class WhatsAppSettingsAdmin(admin.ModelAdmin):
    list_display = ("is_active", "webhook_url", "sender_number", "recipient_type", "recipient_id")


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "user", "partner", "created_at")
    list_filter = ("action", "created_at")
    search_fields = ("partner__digipos_id", "user__username")
