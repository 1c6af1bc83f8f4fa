from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    list_display = ("username", "nama", "role", "phone", "is_active")
    list_filter = ("role", "is_active")
    search_fields = ("username", "nama", "email", "phone")
    fieldsets = DjangoUserAdmin.fieldsets + (
        ("Profile", {"fields": ("role", "nama", "phone", "tap", "jabatan", "photo")}),
    )
