# test_requests/admin.py

from django.contrib import admin

from .models import CenterPolicy, TestRequest, TimelineEntry, UserRole


# =============================================================
# Timeline (READ-ONLY AUDIT LOG)
# =============================================================

@admin.register(TimelineEntry)
class TimelineEntryAdmin(admin.ModelAdmin):
    list_display = (
        "test_request",
        "sequence",
        "from_state",
        "to_state",
        "event",
        "actor_role",
        "actor_id",
        "timestamp",
    )
    list_filter = ("event", "to_state", "actor_role")
    search_fields = ("test_request__id", "actor_id", "note")
    ordering = ("-timestamp", "-id")

    readonly_fields = [f.name for f in TimelineEntry._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class TimelineEntryInline(admin.TabularInline):
    model = TimelineEntry
    extra = 0
    can_delete = False
    ordering = ("sequence",)
    readonly_fields = ("sequence", "from_state", "to_state", "event", "actor_role", "actor_id", "timestamp", "note")
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


# =============================================================
# Test requests (state is read-only here; use the workflow API)
# =============================================================

@admin.register(TestRequest)
class TestRequestAdmin(admin.ModelAdmin):
    list_display = ("id", "test_type", "patient_ref", "center_ref", "urgency", "status", "version", "created_at")
    list_filter = ("status", "urgency", "review_required", "center_ref")
    search_fields = ("id", "patient_ref", "doctor_ref", "test_type")
    ordering = ("-created_at",)
    readonly_fields = ("status", "version", "review_required", "created_at", "updated_at")
    inlines = [TimelineEntryInline]


@admin.register(CenterPolicy)
class CenterPolicyAdmin(admin.ModelAdmin):
    list_display = ("center_ref", "review_required", "updated_at")
    list_filter = ("review_required",)
    search_fields = ("center_ref",)


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ("user", "role", "center_ref", "created_at")
    list_filter = ("role",)
    search_fields = ("user__username", "center_ref")
