from django.contrib import admin

from .models import Canteen, MenuItem


class MenuItemInline(admin.TabularInline):
    model = MenuItem
    extra = 0
    fields = ("name", "category", "price", "is_veg", "in_stock")


@admin.register(Canteen)
class CanteenAdmin(admin.ModelAdmin):
    list_display = ("name", "owner", "is_open", "is_approved", "rating", "total_ratings")
    list_filter = ("is_open", "is_approved")
    search_fields = ("name", "owner__email")
    inlines = [MenuItemInline]


@admin.register(MenuItem)
class MenuItemAdmin(admin.ModelAdmin):
    list_display = ("name", "canteen", "category", "price", "in_stock")
    list_filter = ("in_stock", "is_veg", "category")
    search_fields = ("name", "canteen__name")
