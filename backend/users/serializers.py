from django.db import transaction
from rest_framework import serializers

from loyalty.models import DigiposMaster, Partner
from loyalty.serializers import PartnerSerializer

from .models import User, UserRole


class UserSerializer(serializers.ModelSerializer):
    partner = PartnerSerializer(read_only=True, allow_null=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "nama",
            "email",
            "phone",
            "role",
            "tap",
            "jabatan",
            "photo",
            "is_active",
            "partner",
        ]
        read_only_fields = fields


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=4)
    partner = PartnerSerializer(required=False)

    class Meta:
        model = User
        fields = ["username", "password", "nama", "email", "phone", "role", "tap", "jabatan", "partner"]

    def create(self, validated_data):
        partner_data = validated_data.pop("partner", None) or {}
        password = validated_data.pop("password")
        with transaction.atomic():
            user = User.objects.create_user(password=password, **validated_data)
            if user.role == UserRole.PELANGGAN:
                Partner.objects.create(digipos_id=user.username, user=user, **partner_data)
                DigiposMaster.objects.filter(pk=user.username).update(is_registered=True)
        return user

    def to_representation(self, instance):
        return UserSerializer(instance, context=self.context).data


class ProfileUpdateSerializer(serializers.ModelSerializer):
    partner = PartnerSerializer(required=False)

    class Meta:
        model = User
        fields = ["nama", "email", "phone", "tap", "jabatan", "partner"]

    def update(self, instance, validated_data):
        partner_data = validated_data.pop("partner", None)
        with transaction.atomic():
            instance = super().update(instance, validated_data)
            partner = getattr(instance, "partner", None)
            if partner_data and partner is not None:
                for field, value in partner_data.items():
                    setattr(partner, field, value)
                partner.save()
        return instance

    def to_representation(self, instance):
        return UserSerializer(instance, context=self.context).data


class UserUpdateSerializer(ProfileUpdateSerializer):
    class Meta(ProfileUpdateSerializer.Meta):
        fields = ProfileUpdateSerializer.Meta.fields + ["is_active"]


class RegisterSerializer(serializers.Serializer):
    id_digipos = serializers.CharField(max_length=50)
    password = serializers.CharField(write_only=True, min_length=4)
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    phone = serializers.CharField(required=False, allow_blank=True, default="", max_length=30)
    owner = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    kabupaten = serializers.CharField(required=False, allow_blank=True, default="", max_length=100)
    kecamatan = serializers.CharField(required=False, allow_blank=True, default="", max_length=100)
    alamat = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_id_digipos(self, value):
        return value.strip()


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField(required=False)
    id = serializers.CharField(required=False)
    password = serializers.CharField()

    def validate(self, attrs):
        username = attrs.get("username") or attrs.get("id")
        if not username:
            raise serializers.ValidationError({"username": "This field is required."})
        attrs["username"] = username.strip()
        return attrs
