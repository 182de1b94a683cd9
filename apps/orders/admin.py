from django.contrib import admin

from .models import Order, OrderItem, OrderStatusChange, Review


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("menu_item", "name", "price", "quantity")


class OrderStatusChangeInline(admin.TabularInline):
    model = OrderStatusChange
    extra = 0
    readonly_fields = ("status", "source", "note", "created_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_id", "user", "canteen", "total_amount", "status", "payment_status", "payment_method", "created_at")
    list_filter = ("status", "payment_status", "payment_method")
    search_fields = ("order_id", "gateway_order_id", "user__email", "canteen__name")
    list_select_related = ("user", "canteen")
    readonly_fields = ("order_id", "item_total", "tax", "delivery_fee", "total_amount", "admin_overrides")
    inlines = [OrderItemInline, OrderStatusChangeInline]


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ("order", "canteen", "user", "rating", "created_at")
    list_filter = ("rating",)
    search_fields = ("order__order_id", "canteen__name", "comment")
