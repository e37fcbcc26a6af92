"""
Promotions API URLs
Mounted under /api/promotions/.
"""

from django.urls import path

from . import views

app_name = "promotions"

urlpatterns = [
    # Discount codes
    path("discount-codes/", views.discount_code_list, name="discount_code_list"),
    path("discount-codes/validate/", views.validate_discount_code, name="validate_discount_code"),
    path("discount-codes/apply/", views.apply_discount_code, name="apply_discount_code"),
    path("discount-codes/<uuid:code_id>/", views.discount_code_detail, name="discount_code_detail"),
    path(
        "discount-codes/<uuid:code_id>/usage-history/",
        views.discount_code_usage_history,
        name="discount_code_usage_history",
    ),
    path("discount-usages/<uuid:usage_id>/reverse/", views.reverse_discount_usage, name="reverse_discount_usage"),
    # Rewards
    path("rewards/", views.reward_list, name="reward_list"),
    path("rewards/verify-code/", views.verify_redemption_code, name="verify_redemption_code"),
    path("rewards/stats/", views.reward_stats, name="reward_stats"),
    path("rewards/trend/", views.reward_trend, name="reward_trend"),
    path("rewards/<uuid:reward_id>/", views.reward_detail, name="reward_detail"),
    path("rewards/<uuid:reward_id>/redeem/", views.redeem_reward, name="redeem_reward"),
    # Redemptions
    path("redemptions/", views.redemption_list, name="redemption_list"),
    path("redemptions/<uuid:redemption_id>/mark-used/", views.mark_redemption_used, name="mark_redemption_used"),
    path("redemptions/<uuid:redemption_id>/refund/", views.refund_redemption, name="refund_redemption"),
    path("redemptions/<uuid:redemption_id>/cancel/", views.cancel_redemption, name="cancel_redemption"),
    # Members
    path("members/<uuid:member_id>/redemptions/", views.member_redemptions, name="member_redemptions"),
    path("members/<uuid:member_id>/points/", views.member_points, name="member_points"),
]
