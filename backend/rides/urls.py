from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    # Browse / create
    path('', views.RideListCreateView.as_view(), name='ride-list'),
    path('request/', views.RideRequestView.as_view(), name='ride-request'),
    path('matches/', views.RideMatchesView.as_view(), name='ride-matches'),

    # Destinations & admin
    path('destinations/popular/', views.PopularDestinationsView.as_view(), name='popular-destinations'),
    path('admin/stats/', views.AdminStatsView.as_view(), name='admin-stats'),

    # Ride actions
    path('<int:ride_id>/', views.RideDetailView.as_view(), name='ride-detail'),
    path('<int:ride_id>/join/', views.RideJoinView.as_view(), name='ride-join'),
    path('<int:ride_id>/leave/', views.RideLeaveView.as_view(), name='ride-leave'),
    path('<int:ride_id>/complete/', views.RideCompleteView.as_view(), name='ride-complete'),
    path('<int:ride_id>/messages/', views.RideMessagesView.as_view(), name='ride-messages'),
]
