"""Invoice URL Configuration"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import InvoiceLineItemViewSet, InvoiceViewSet

router = DefaultRouter()
router.register(r'invoices', InvoiceViewSet, basename='invoice')
router.register(r'invoice-line-items', InvoiceLineItemViewSet, basename='invoice-line-item')

urlpatterns = [
    path('', include(router.urls)),
]
