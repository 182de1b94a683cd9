from django.urls import path

from . import views

app_name = "notifications"

urlpatterns = [
    path("twilio/sms-status", views.twilio_sms_status, name="twilio_sms_status"),
    path("sendgrid/email-events", views.sendgrid_email_events, name="sendgrid_email_events"),
]
