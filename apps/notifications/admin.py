from django.contrib import admin

from .models import Notification, NotificationAttempt, Template


class NotificationAttemptInline(admin.TabularInline):
    model = NotificationAttempt
    extra = 0
    readonly_fields = ("started_at", "finished_at", "result", "error_message")


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("type", "to", "template_code", "status", "provider", "attempts", "created_at")
    list_filter = ("type", "status", "provider")
    search_fields = ("to", "template_code", "provider_message_id", "order__order_id")
    raw_id_fields = ("recipient", "order")
    inlines = [NotificationAttemptInline]


@admin.register(Template)
class TemplateAdmin(admin.ModelAdmin):
    list_display = ("code", "channel", "subject")
    list_filter = ("channel",)
