from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.db.models import Count

from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Campus users. Registration only creates students; promote admins here."""

    list_display = ["username", "name", "email", "role", "rides_created", "is_active"]
    list_filter = ["role", "is_active", "date_joined"]
    search_fields = ["username", "name", "email"]
    ordering = ("username",)
    actions = ["promote_to_admin", "demote_to_student"]

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Campus", {"fields": ("name", "role")}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Campus", {"fields": ("email", "name", "role")}),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).annotate(_rides_created=Count("created_rides"))

    @admin.display(description="Rides created", ordering="_rides_created")
    def rides_created(self, obj):
        return obj._rides_created

    @admin.action(description="Grant admin dashboard access")
    def promote_to_admin(self, request, queryset):
        updated = queryset.update(role="admin")
        self.message_user(request, f"{updated} user(s) can now see ride statistics.")

    @admin.action(description="Revoke admin dashboard access")
    def demote_to_student(self, request, queryset):
        updated = queryset.update(role="user")
        self.message_user(request, f"{updated} user(s) set back to student.")
