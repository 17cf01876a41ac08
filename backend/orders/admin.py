# backend/orders/admin.py
from django.contrib import admin

from .models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "order_no", "title", "buyer", "seller", "amount", "status", "completed_at", "created_at")
    search_fields = ("order_no", "title", "buyer__email", "seller__email")
    list_filter = ("status", "created_at")
    readonly_fields = ("order_no", "created_at", "updated_at")
    raw_id_fields = ("buyer", "seller")
