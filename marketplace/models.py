from django.db import models
from django.utils import timezone


class Provider(models.Model):
    # Wallet addresses are stored lowercase; lookups lowercase their input.
    wallet_address = models.CharField(max_length=128, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    website = models.CharField(max_length=512, blank=True, null=True)
    avatar_url = models.CharField(max_length=512, blank=True, null=True)
    email = models.CharField(max_length=255, unique=True, blank=True, null=True)
    reputation_score = models.FloatField(default=0)
    # Integer amount in the smallest unit (wei), kept as a string.
    total_earnings = models.CharField(max_length=78, default='0')
    total_calls = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-reputation_score', '-total_calls', '-created_at']

    def __str__(self) -> str:
        return self.name

    def deactivate(self) -> None:
        self.is_active = False
        self.save(update_fields=['is_active', 'updated_at'])
        self.apis.update(is_active=False, updated_at=timezone.now())

    def add_earnings(self, amount: int) -> None:
        self.total_earnings = str(int(self.total_earnings or '0') + amount)


class Api(models.Model):
    provider = models.ForeignKey(
        Provider, related_name='apis', on_delete=models.CASCADE)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')
    category = models.CharField(max_length=64, default='General')
    endpoint = models.URLField(max_length=512)
    public_path = models.CharField(max_length=255, unique=True)
    method = models.CharField(max_length=10, default='GET')
    price_per_call = models.CharField(max_length=78)
    currency = models.CharField(max_length=16, default='ETH')
    documentation = models.JSONField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    total_calls = models.PositiveIntegerField(default=0)
    total_revenue = models.CharField(max_length=78, default='0')
    average_response_time = models.PositiveIntegerField(default=0)
    uptime = models.FloatField(default=100.0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-total_calls', '-created_at']
        indexes = [models.Index(fields=['provider', 'is_active'], name='api_provider_active_idx')]

    def __str__(self) -> str:
        return self.name

    def add_revenue(self, amount: int) -> None:
        self.total_revenue = str(int(self.total_revenue or '0') + amount)


class Payment(models.Model):
    provider = models.ForeignKey(
        Provider, related_name='payments', on_delete=models.SET_NULL, null=True, blank=True)
    # Nullable: a payment may outlive the API it bought access to.
    api = models.ForeignKey(
        Api, related_name='payments', on_delete=models.SET_NULL, null=True, blank=True)
    developer_address = models.CharField(max_length=128, db_index=True)
    transaction_hash = models.CharField(max_length=128, unique=True)
    amount = models.CharField(max_length=78)
    currency = models.CharField(max_length=16, default='ETH')
    number_of_tokens = models.PositiveIntegerField(default=0)
    tokens_issued = models.PositiveIntegerField(default=0)
    is_verified = models.BooleanField(default=False)
    block_number = models.BigIntegerField(blank=True, null=True)
    block_timestamp = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return self.transaction_hash


class Token(models.Model):
    payment = models.ForeignKey(
        Payment, related_name='tokens', on_delete=models.CASCADE)
    api = models.ForeignKey(
        Api, related_name='tokens', on_delete=models.CASCADE)
    provider = models.ForeignKey(
        Provider, related_name='tokens', on_delete=models.CASCADE)
    developer_address = models.CharField(max_length=128, db_index=True)
    token_hash = models.CharField(max_length=128, unique=True)
    is_used = models.BooleanField(default=False)
    used_at = models.DateTimeField(blank=True, null=True)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [models.Index(fields=['payment', 'is_used'], name='token_payment_unused_idx')]

    def __str__(self) -> str:
        return self.token_hash


class Review(models.Model):
    api = models.ForeignKey(
        Api, related_name='reviews', on_delete=models.CASCADE)
    reviewer_address = models.CharField(max_length=128)
    rating = models.PositiveSmallIntegerField()
    comment = models.TextField(blank=True, default='')
    helpful_count = models.PositiveIntegerField(default=0)
    is_verified = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-helpful_count', '-created_at']


class Favorite(models.Model):
    user_address = models.CharField(max_length=128)
    api = models.ForeignKey(
        Api, related_name='favorites', on_delete=models.CASCADE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user_address', 'api'], name='unique_favorite_per_user'),
        ]


class UsageLog(models.Model):
    token = models.ForeignKey(
        Token, related_name='usage_logs', on_delete=models.SET_NULL, null=True, blank=True)
    api = models.ForeignKey(
        Api, related_name='usage_logs', on_delete=models.CASCADE)
    provider = models.ForeignKey(
        Provider, related_name='usage_logs', on_delete=models.CASCADE)
    developer_address = models.CharField(max_length=128)
    request_headers = models.JSONField(default=dict, blank=True)
    request_params = models.JSONField(default=dict, blank=True)
    request_body = models.TextField(blank=True, null=True)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_time = models.PositiveIntegerField(default=0)
    response_size = models.PositiveIntegerField(default=0)
    success = models.BooleanField(default=False)
    ip_address = models.CharField(max_length=64, default='unknown')
    user_agent = models.CharField(max_length=512, default='unknown')
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ['-created_at']
