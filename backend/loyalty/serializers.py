from rest_framework import serializers

from .models import (
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
    image_validators,
)
from .exceptions import LoyaltyError
from .services import ADJUST_ADD, ADJUST_SUBTRACT, MAX_INTEGER, transaction_total


class PartnerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Partner
        fields = [
            "digipos_id",
            "points",
            "level",
            "kupon_undian",
            "owner",
            "kabupaten",
            "kecamatan",
            "salesforce",
            "no_rs",
            "alamat",
        ]
        read_only_fields = ["digipos_id", "points", "level", "kupon_undian"]


class TransactionSerializer(serializers.ModelSerializer):
    id_digipos = serializers.CharField(source="partner_id", read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "id_digipos",
            "date",
            "produk",
            "harga",
            "kuantiti",
            "total_pembelian",
            "points_earned",
        ]
        read_only_fields = fields


class TransactionCreateSerializer(serializers.Serializer):
    id_digipos = serializers.CharField(max_length=50)
    date = serializers.DateField()
    produk = serializers.CharField(max_length=255)
    harga = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=0)
    kuantiti = serializers.IntegerField(min_value=1, max_value=MAX_INTEGER)

    def validate(self, attrs):
        try:
            attrs["harga"], _ = transaction_total(attrs["harga"], attrs["kuantiti"])
        except LoyaltyError as exc:
            raise serializers.ValidationError(str(exc)) from exc
        return attrs


class RewardSerializer(serializers.ModelSerializer):
    class Meta:
        model = Reward
        fields = ["id", "name", "points", "stock", "image", "sort_order"]
        read_only_fields = ["image"]
        extra_kwargs = {"stock": {"min_value": 0}}


class RedemptionSerializer(serializers.ModelSerializer):
    id_digipos = serializers.CharField(source="partner_id", read_only=True)
    reward_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Redemption
        fields = [
            "id",
            "id_digipos",
            "reward_id",
            "user_name",
            "reward_name",
            "points_spent",
            "date",
            "status",
            "status_note",
            "status_updated_at",
            "documentation_photo",
        ]
        read_only_fields = fields


class RedemptionCreateSerializer(serializers.Serializer):
    reward_id = serializers.IntegerField()
    id_digipos = serializers.CharField(max_length=50, required=False)
    points_spent = serializers.IntegerField(min_value=0, required=False)
    is_kupon = serializers.BooleanField(default=False)


class RedemptionStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RedemptionStatus.choices)
    note = serializers.CharField(required=False, allow_blank=True)
    photo = serializers.FileField(required=False, validators=image_validators)


class LoyaltyProgramSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoyaltyProgram
        fields = ["level", "points_needed", "multiplier", "benefit"]
        read_only_fields = ["level"]


class RunningProgramTargetSerializer(serializers.ModelSerializer):
    id_digipos = serializers.CharField(source="partner_id", read_only=True)
    nama = serializers.CharField(source="partner.user.nama", read_only=True)

    class Meta:
        model = RunningProgramTarget
        fields = ["id_digipos", "nama", "progress"]


class RunningProgramSerializer(serializers.ModelSerializer):
    targets = RunningProgramTargetSerializer(many=True, read_only=True)

    class Meta:
        model = RunningProgram
        fields = ["id", "name", "mechanism", "prize", "start_date", "end_date", "image", "targets"]
        read_only_fields = ["image"]

    def validate(self, attrs):
        start_date = attrs.get("start_date", getattr(self.instance, "start_date", None))
        end_date = attrs.get("end_date", getattr(self.instance, "end_date", None))
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError({"end_date": "end_date must not be before start_date"})
        return attrs


class ParticipantsSerializer(serializers.Serializer):
    partner_ids = serializers.ListField(child=serializers.CharField(max_length=50), allow_empty=True)


class ProgressItemSerializer(serializers.Serializer):
    id_digipos = serializers.CharField(max_length=50)
    progress = serializers.IntegerField()


class ProgressUpdateSerializer(serializers.Serializer):
    items = ProgressItemSerializer(many=True)


class RaffleProgramSerializer(serializers.ModelSerializer):
    class Meta:
        model = RaffleProgram
        fields = ["id", "name", "prize", "period", "is_active"]


class RaffleWinnerSerializer(serializers.ModelSerializer):
    class Meta:
        model = RaffleWinner
        fields = ["id", "name", "prize", "photo", "period", "partner", "raffle_program", "created_at"]
        read_only_fields = ["created_at"]
        extra_kwargs = {"photo": {"validators": image_validators}}


class SpecialNumberSerializer(serializers.ModelSerializer):
    class Meta:
        model = SpecialNumber
        fields = ["id", "phone_number", "price", "is_sold", "sn", "lokasi"]


class WhatsAppSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = WhatsAppSettings
        fields = ["is_active", "webhook_url", "sender_number", "recipient_type", "recipient_id"]


class LocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Location
        fields = ["id", "kabupaten", "kecamatan"]


class DigiposMasterSerializer(serializers.ModelSerializer):
    class Meta:
        model = DigiposMaster
        fields = ["id_digipos", "no_rs", "nama_outlet", "tap", "salesforce"]


class PointsAdjustmentSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=[ADJUST_ADD, ADJUST_SUBTRACT])
    amount = serializers.IntegerField(min_value=1)


class LevelChangeSerializer(serializers.Serializer):
    level = serializers.CharField(max_length=50)


class SimulateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=16, decimal_places=2, min_value=0)
    level = serializers.CharField(max_length=50)


class ImageUploadSerializer(serializers.Serializer):
    photo = serializers.FileField(validators=image_validators)
