import logging

from django.db import connection
from django.db.models import Prefetch
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from users.models import User, UserRole
from users.permissions import IsAdminOrOperatorRole, IsAdminUserRole, IsStaffRole
from users.serializers import UserSerializer

from .exceptions import LoyaltyError, PartnerNotFound
from .models import (
    Location,
    LoyaltyProgram,
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
from .serializers import (
    DigiposMasterSerializer,
    ImageUploadSerializer,
    LocationSerializer,
    LoyaltyProgramSerializer,
    ParticipantsSerializer,
    ProgressUpdateSerializer,
    RaffleProgramSerializer,
    RaffleWinnerSerializer,
    RedemptionCreateSerializer,
    RedemptionSerializer,
    RedemptionStatusSerializer,
    RewardSerializer,
    RunningProgramSerializer,
    SimulateSerializer,
    SpecialNumberSerializer,
    TransactionCreateSerializer,
    TransactionSerializer,
    WhatsAppSettingsSerializer,
)
from .services import (
    add_transaction,
    draw_winner,
    export_transactions,
    import_participants,
    import_progress,
    import_special_numbers,
    import_transactions,
    lookup_digipos,
    raffle_participants,
    redeem_reward,
    reorder_rewards,
    set_participants,
    simulate_points,
    update_progress,
    update_redemption_status,
)
from .spreadsheets import xlsx_response
from .throttles import UploadRateThrottle

logger = logging.getLogger(__name__)


def _error_response(exc: LoyaltyError) -> Response:
    return Response({"detail": str(exc)}, status=exc.status_code)


def _own_partner_id(user):
    partner = getattr(user, "partner", None)
    return partner.pk if partner else None


class RolePermissionMixin:
    """Pick permission classes per action: reads and writes are guarded separately."""

    read_actions = {"list", "retrieve"}
    read_permission_classes = [IsAuthenticated]
    write_permission_classes = [IsAdminUserRole]

    def get_permissions(self):
        if self.action in self.read_actions:
            permission_classes = self.read_permission_classes
        else:
            permission_classes = self.write_permission_classes
        return [perm() for perm in permission_classes]


class BootstrapView(APIView):
    """Everything the client needs after login, scoped to the caller's role."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        tables = set(connection.introspection.table_names())
        context = {"request": request}

        def rows(model, queryset, serializer_class):
            if model._meta.db_table not in tables:
                logger.warning("Table %s does not exist, returning empty list", model._meta.db_table)
                return []
            return serializer_class(queryset, many=True, context=context).data

        users = User.objects.select_related("partner").order_by("username")
        transactions = Transaction.objects.all()
        redemptions = Redemption.objects.all()
        programs = RunningProgram.objects.prefetch_related(
            Prefetch("targets", queryset=RunningProgramTarget.objects.select_related("partner__user"))
        )
        if user.is_partner:
            users = users.filter(pk=user.pk)
            transactions = transactions.filter(partner__user=user)
            redemptions = redemptions.filter(partner__user=user)
            programs = RunningProgram.objects.filter(targets__partner__user=user).prefetch_related(
                Prefetch(
                    "targets",
                    queryset=RunningProgramTarget.objects.filter(partner__user=user).select_related("partner__user"),
                )
            )

        data = {
            "users": rows(User, users, UserSerializer),
            "transactions": rows(Transaction, transactions, TransactionSerializer),
            "rewards": rows(Reward, Reward.objects.all(), RewardSerializer),
            "redemptions": rows(Redemption, redemptions, RedemptionSerializer),
            "loyalty_programs": rows(LoyaltyProgram, LoyaltyProgram.objects.all(), LoyaltyProgramSerializer),
            "running_programs": rows(RunningProgram, programs, RunningProgramSerializer),
            "raffle_programs": rows(RaffleProgram, RaffleProgram.objects.all(), RaffleProgramSerializer),
            "raffle_winners": rows(RaffleWinner, RaffleWinner.objects.all(), RaffleWinnerSerializer),
            "special_numbers": rows(SpecialNumber, SpecialNumber.objects.all(), SpecialNumberSerializer),
            "locations": rows(Location, Location.objects.all(), LocationSerializer),
        }
        if user.is_staff_role:
            data["whatsapp_settings"] = WhatsAppSettingsSerializer(WhatsAppSettings.get_solo()).data
        return Response(data)


class DigiposLookupView(APIView):
    permission_classes = [AllowAny]

    def get(self, request, id_digipos):
        try:
            master = lookup_digipos(id_digipos.strip())
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(DigiposMasterSerializer(master).data)


class LocationListView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        return Response(LocationSerializer(Location.objects.all(), many=True).data)


class TransactionViewSet(
    RolePermissionMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Transaction.objects.all()
    serializer_class = TransactionSerializer
    write_permission_classes = [IsAdminOrOperatorRole]

    def get_permissions(self):
        if self.action == "export":
            return [IsStaffRole()]
        return super().get_permissions()

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if user.is_partner:
            return qs.filter(partner__user=user)
        id_digipos = self.request.query_params.get("id_digipos")
        if id_digipos:
            qs = qs.filter(partner_id=id_digipos)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = TransactionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            trx = add_transaction(
                data["id_digipos"],
                date=data["date"],
                produk=data["produk"],
                harga=data["harga"],
                kuantiti=data["kuantiti"],
            )
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(TransactionSerializer(trx).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="bulk-upload", throttle_classes=[UploadRateThrottle])
    def bulk_upload(self, request):
        try:
            result = import_transactions(request.FILES.get("file"))
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(result.as_dict())

    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request):
        return xlsx_response(export_transactions(self.get_queryset()), "transactions.xlsx")


class RewardViewSet(RolePermissionMixin, viewsets.ModelViewSet):
    queryset = Reward.objects.all()
    serializer_class = RewardSerializer
    read_permission_classes = [AllowAny]

    @action(detail=True, methods=["post"], url_path="photo", throttle_classes=[UploadRateThrottle])
    def photo(self, request, pk=None):
        reward = self.get_object()
        serializer = ImageUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reward.image = serializer.validated_data["photo"]
        reward.save(update_fields=["image", "updated_at"])
        return Response(self.get_serializer(reward).data)

    @action(detail=False, methods=["post"], url_path="reorder")
    def reorder(self, request):
        ids = request.data.get("ids")
        if not isinstance(ids, list):
            return Response({"detail": "ids must be a list"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            reorder_rewards([int(reward_id) for reward_id in ids])
        except (TypeError, ValueError):
            return Response({"detail": "ids must be integers"}, status=status.HTTP_400_BAD_REQUEST)
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(self.get_serializer(Reward.objects.all(), many=True).data)


class RedemptionViewSet(
    RolePermissionMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Redemption.objects.all()
    serializer_class = RedemptionSerializer
    read_actions = {"list", "retrieve", "create"}

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if user.is_partner:
            return qs.filter(partner__user=user)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = RedemptionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        user = request.user
        if user.is_partner:
            partner_id = _own_partner_id(user)
            if partner_id is None:
                return _error_response(PartnerNotFound("No partner profile for this account"))
        elif user.is_superuser or user.role == UserRole.ADMIN:
            partner_id = data.get("id_digipos")
            if not partner_id:
                return Response({"detail": "id_digipos is required"}, status=status.HTTP_400_BAD_REQUEST)
        else:
            return Response(
                {"detail": "Only partners or admins can redeem rewards"},
                status=status.HTTP_403_FORBIDDEN,
            )

        try:
            redemption = redeem_reward(
                partner_id,
                data["reward_id"],
                points_spent=data.get("points_spent"),
                is_kupon=data["is_kupon"],
            )
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(self.get_serializer(redemption).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="status")
    def update_status(self, request, pk=None):
        redemption = self.get_object()
        serializer = RedemptionStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            redemption = update_redemption_status(
                redemption,
                data["status"],
                note=data.get("note"),
                photo=data.get("photo"),
                user=request.user,
            )
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(self.get_serializer(redemption).data)


class LoyaltyProgramViewSet(
    RolePermissionMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = LoyaltyProgram.objects.all()
    serializer_class = LoyaltyProgramSerializer
    lookup_field = "level"
    read_actions = {"list", "retrieve", "simulate"}
    read_permission_classes = [AllowAny]

    @action(detail=False, methods=["get"], url_path="simulate")
    def simulate(self, request):
        serializer = SimulateSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        return Response(simulate_points(data["amount"], data["level"]))


class RunningProgramViewSet(RolePermissionMixin, viewsets.ModelViewSet):
    queryset = RunningProgram.objects.prefetch_related(
        Prefetch("targets", queryset=RunningProgramTarget.objects.select_related("partner__user"))
    )
    serializer_class = RunningProgramSerializer

    def _reload(self, program):
        return self.get_serializer(self.get_queryset().get(pk=program.pk)).data

    @action(detail=True, methods=["post"], url_path="photo", throttle_classes=[UploadRateThrottle])
    def photo(self, request, pk=None):
        program = self.get_object()
        serializer = ImageUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        program.image = serializer.validated_data["photo"]
        program.save(update_fields=["image", "updated_at"])
        return Response(self._reload(program))

    @action(detail=True, methods=["post"], url_path="participants")
    def participants(self, request, pk=None):
        program = self.get_object()
        serializer = ParticipantsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = set_participants(program, serializer.validated_data["partner_ids"])
        return Response(result.as_dict())

    @action(
        detail=True,
        methods=["post"],
        url_path="participants/upload",
        throttle_classes=[UploadRateThrottle],
    )
    def participants_upload(self, request, pk=None):
        program = self.get_object()
        try:
            result = import_participants(program, request.FILES.get("file"))
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(result.as_dict())

    @action(detail=True, methods=["post"], url_path="progress")
    def progress(self, request, pk=None):
        program = self.get_object()
        serializer = ProgressUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = update_progress(program, serializer.validated_data["items"])
        return Response(result.as_dict())

    @action(
        detail=True,
        methods=["post"],
        url_path="progress/upload",
        throttle_classes=[UploadRateThrottle],
    )
    def progress_upload(self, request, pk=None):
        program = self.get_object()
        try:
            result = import_progress(program, request.FILES.get("file"))
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(result.as_dict())


class RaffleProgramViewSet(RolePermissionMixin, viewsets.ModelViewSet):
    queryset = RaffleProgram.objects.all()
    serializer_class = RaffleProgramSerializer

    @action(detail=True, methods=["get"], url_path="participants")
    def participants(self, request, pk=None):
        return Response(raffle_participants(self.get_object()))

    @action(detail=True, methods=["post"], url_path="draw")
    def draw(self, request, pk=None):
        raffle = self.get_object()
        try:
            winner = draw_winner(raffle, user=request.user)
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(
            RaffleWinnerSerializer(winner, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )


class RaffleWinnerViewSet(RolePermissionMixin, viewsets.ModelViewSet):
    queryset = RaffleWinner.objects.order_by("-created_at")
    serializer_class = RaffleWinnerSerializer
    read_permission_classes = [AllowAny]


class SpecialNumberViewSet(RolePermissionMixin, viewsets.ModelViewSet):
    queryset = SpecialNumber.objects.all()
    serializer_class = SpecialNumberSerializer
    read_permission_classes = [AllowAny]
    write_permission_classes = [IsAdminOrOperatorRole]

    def get_queryset(self):
        qs = super().get_queryset()
        sold = self.request.query_params.get("is_sold")
        if sold is not None:
            qs = qs.filter(is_sold=sold in {"1", "true", "yes"})
        lokasi = self.request.query_params.get("lokasi")
        if lokasi:
            qs = qs.filter(lokasi__iexact=lokasi)
        return qs

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        number = self.get_object()
        is_sold = request.data.get("is_sold")
        if is_sold is None:
            number.is_sold = not number.is_sold
        else:
            number.is_sold = str(is_sold).lower() in {"1", "true", "yes"}
        number.save(update_fields=["is_sold", "updated_at"])
        return Response(self.get_serializer(number).data)

    @action(detail=False, methods=["post"], url_path="bulk-upload", throttle_classes=[UploadRateThrottle])
    def bulk_upload(self, request):
        try:
            result = import_special_numbers(request.FILES.get("file"))
        except LoyaltyError as exc:
            return _error_response(exc)
        return Response(result.as_dict())


class WhatsAppSettingsViewSet(viewsets.ViewSet):
    def get_permissions(self):
        if self.action == "list":
            return [IsStaffRole()]
        return [IsAdminUserRole()]

    def list(self, request):
        return Response(WhatsAppSettingsSerializer(WhatsAppSettings.get_solo()).data)

    def create(self, request):
        wa_settings = WhatsAppSettings.get_solo()
        serializer = WhatsAppSettingsSerializer(wa_settings, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)
