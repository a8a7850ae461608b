from django.contrib import admin

from marketplace.models import Api, Favorite, Payment, Provider, Review, Token, UsageLog


@admin.register(Provider)
class ProviderAdmin(admin.ModelAdmin):
    list_display = ("name", "wallet_address", "is_active", "total_calls", "total_earnings", "created_at")
    list_filter = ("is_active",)
    search_fields = ("name", "wallet_address", "email")


@admin.register(Api)
class ApiAdmin(admin.ModelAdmin):
    list_display = ("name", "public_path", "provider", "price_per_call", "is_active", "total_calls")
    list_filter = ("is_active", "category")
    search_fields = ("name", "public_path", "endpoint")


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("transaction_hash", "developer_address", "api", "amount", "tokens_issued", "is_verified", "created_at")
    list_filter = ("is_verified", "currency")
    search_fields = ("transaction_hash", "developer_address")


@admin.register(Token)
class TokenAdmin(admin.ModelAdmin):
    list_display = ("token_hash", "developer_address", "api", "is_used", "expires_at")
    list_filter = ("is_used",)
    search_fields = ("token_hash", "developer_address")


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ("api", "reviewer_address", "rating", "is_verified", "created_at")
    list_filter = ("is_verified", "rating")


@admin.register(Favorite)
class FavoriteAdmin(admin.ModelAdmin):
    list_display = ("user_address", "api", "created_at")
    search_fields = ("user_address",)


@admin.register(UsageLog)
class UsageLogAdmin(admin.ModelAdmin):
    list_display = ("api", "developer_address", "response_status", "success", "created_at")
    list_filter = ("success",)
    search_fields = ("developer_address",)
