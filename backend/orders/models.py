# backend/orders/models.py
from django.conf import settings
from django.db import models, transaction
from django.utils import timezone


class OrderStatus(models.TextChoices):
    PENDING = 'pending', 'Pending Payment'
    PAID = 'paid', 'Paid'
    SHIPPED = 'shipped', 'Shipped'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


class Order(models.Model):
    """
    Minimal view of a marketplace order: who bought, who sold, and whether
    the trade finished. Payment and fulfilment live elsewhere.
    """
    order_no = models.CharField(max_length=30, unique=True, editable=False, db_index=True)
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='purchases')
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='sales')
    title = models.CharField(max_length=255, blank=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(
        max_length=20, choices=OrderStatus.choices,
        default=OrderStatus.PENDING, db_index=True
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def save(self, *args, **kwargs):
        if not self.order_no:
            self.order_no = self._generate_order_no()
        if self.status == OrderStatus.COMPLETED and not self.completed_at:
            self.completed_at = timezone.now()
        super().save(*args, **kwargs)

    def _generate_order_no(self):
        prefix = f'ORD-{timezone.now().strftime("%Y%m%d")}-'
        with transaction.atomic():
            last_order = Order.objects.filter(order_no__startswith=prefix).order_by('order_no').last()
            if last_order:
                new_suffix = int(last_order.order_no.split('-')[-1]) + 1
            else:
                new_suffix = 1
            return f"{prefix}{new_suffix:04d}"

    @property
    def is_completed(self):
        return self.status == OrderStatus.COMPLETED

    def __str__(self):
        return f"[{self.order_no}] {self.title or 'Order'} (${self.amount})"
