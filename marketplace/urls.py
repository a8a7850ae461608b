from django.apps import apps
from django.urls import path

from marketplace.views import PaymentHistoryView, ProcessPaymentView, PurchasedApisView
from marketplace.views_catalog import (
    ApiDetailView,
    ApiListView,
    FavoriteView,
    ProviderByWalletView,
    ProviderDetailView,
    ProviderListView,
    PublicApiView,
    UserFavoritesView,
)
from marketplace.views_tokens import TokenConsumeView, TokenListView, TokenValidateView

app_name = 'marketplace'

store = apps.get_app_config('marketplace').store

urlpatterns = [
    path('purchased-apis', PurchasedApisView.as_view(store=store), name='purchased-apis'),
    path('payments/history', PaymentHistoryView.as_view(store=store), name='payment-history'),
    path('payments/process', ProcessPaymentView.as_view(store=store), name='process-payment'),
    path('tokens', TokenListView.as_view(store=store), name='tokens'),
    path('tokens/validate', TokenValidateView.as_view(store=store), name='validate-token'),
    path('tokens/consume', TokenConsumeView.as_view(store=store), name='consume-token'),
    path('providers', ProviderListView.as_view(store=store), name='providers'),
    path('providers/<int:provider_id>', ProviderDetailView.as_view(store=store), name='provider'),
    path('providers/wallet/<str:address>', ProviderByWalletView.as_view(store=store),
         name='provider-by-wallet'),
    path('apis', ApiListView.as_view(store=store), name='apis'),
    path('apis/<int:api_id>', ApiDetailView.as_view(store=store), name='api'),
    path('apis/public/<path:public_path>', PublicApiView.as_view(store=store), name='public-api'),
    path('favorites', FavoriteView.as_view(store=store), name='favorites'),
    path('favorites/<str:address>', UserFavoritesView.as_view(store=store), name='user-favorites'),
]
