from django.db import transaction
from rest_framework import mixins, status, viewsets
from rest_framework.authtoken.models import Token
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from loyalty.exceptions import LoyaltyError
from loyalty.serializers import ImageUploadSerializer, LevelChangeSerializer, PointsAdjustmentSerializer
from loyalty.services import adjust_points, change_level, export_users, register_partner
from loyalty.spreadsheets import xlsx_response
from loyalty.throttles import LoginRateThrottle, UploadRateThrottle

from .models import User
from .permissions import IsAdminUserRole, IsSelfOrAdmin, IsStaffRole
from .serializers import (
    LoginSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    UserCreateSerializer,
    UserSerializer,
    UserUpdateSerializer,
)
from .services import authenticate_with_self_heal


def _partner_or_error(user):
    partner = getattr(user, "partner", None)
    if partner is None:
        return None, Response({"detail": "User is not a partner"}, status=status.HTTP_400_BAD_REQUEST)
    return partner, None


class LoginView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [LoginRateThrottle]

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = authenticate_with_self_heal(
            request,
            serializer.validated_data["username"],
            serializer.validated_data["password"],
        )
        if user is None:
            return Response({"detail": "Invalid username or password"}, status=status.HTTP_401_UNAUTHORIZED)

        token, _ = Token.objects.get_or_create(user=user)
        return Response({"token": token.key, "user": UserSerializer(user, context={"request": request}).data})


class RegisterView(APIView):
    permission_classes = [AllowAny]
    throttle_classes = [LoginRateThrottle]

    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            user = register_partner(**serializer.validated_data)
        except LoyaltyError as exc:
            return Response({"detail": str(exc)}, status=exc.status_code)
        return Response(
            UserSerializer(user, context={"request": request}).data,
            status=status.HTTP_201_CREATED,
        )


class LogoutView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        Token.objects.filter(user=request.user).delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user, context={"request": request}).data)


class UserViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = User.objects.select_related("partner").order_by("username")
    serializer_class = UserSerializer
    lookup_field = "username"
    lookup_value_regex = "[^/]+"

    def get_permissions(self):
        if self.action in {"list", "retrieve", "export"}:
            permission_classes = [IsStaffRole]
        elif self.action in {"profile", "photo"}:
            permission_classes = [IsAuthenticated, IsSelfOrAdmin]
        else:
            permission_classes = [IsAdminUserRole]
        return [perm() for perm in permission_classes]

    def get_serializer_class(self):
        if self.action == "create":
            return UserCreateSerializer
        if self.action in {"update", "partial_update"}:
            return UserUpdateSerializer
        if self.action == "profile":
            return ProfileUpdateSerializer
        return UserSerializer

    def get_queryset(self):
        qs = super().get_queryset()
        role = self.request.query_params.get("role")
        if role:
            qs = qs.filter(role=role)
        return qs

    @action(detail=True, methods=["put", "patch"], url_path="profile")
    def profile(self, request, username=None):
        user = self.get_object()
        serializer = self.get_serializer(user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)

    @action(detail=True, methods=["post"], url_path="photo", throttle_classes=[UploadRateThrottle])
    def photo(self, request, username=None):
        user = self.get_object()
        serializer = ImageUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user.photo = serializer.validated_data["photo"]
        user.save(update_fields=["photo"])
        return Response(UserSerializer(user, context={"request": request}).data)

    @action(detail=True, methods=["post"], url_path="points")
    def points(self, request, username=None):
        partner, error_response = _partner_or_error(self.get_object())
        if error_response:
            return error_response
        serializer = PointsAdjustmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            balance = adjust_points(
                partner.pk,
                serializer.validated_data["amount"],
                serializer.validated_data["action"],
                user=request.user,
            )
        except LoyaltyError as exc:
            return Response({"detail": str(exc)}, status=exc.status_code)
        return Response({"id_digipos": partner.pk, "points": balance})

    @action(detail=True, methods=["post"], url_path="level")
    def level(self, request, username=None):
        partner, error_response = _partner_or_error(self.get_object())
        if error_response:
            return error_response
        serializer = LevelChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            partner = change_level(partner.pk, serializer.validated_data["level"], user=request.user)
        except LoyaltyError as exc:
            return Response({"detail": str(exc)}, status=exc.status_code)
        return Response({"id_digipos": partner.pk, "level": partner.level})

    @action(detail=True, methods=["post"], url_path="deactivate")
    def deactivate(self, request, username=None):
        user = self.get_object()
        if user.pk == request.user.pk:
            return Response({"detail": "You cannot deactivate your own account"}, status=status.HTTP_400_BAD_REQUEST)
        with transaction.atomic():
            user.is_active = False
            user.save(update_fields=["is_active"])
            Token.objects.filter(user=user).delete()
        return Response(UserSerializer(user, context={"request": request}).data)

    @action(detail=False, methods=["get"], url_path="export")
    def export(self, request):
        return xlsx_response(export_users(), "users.xlsx")
