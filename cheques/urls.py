from django.urls import path
from cheques import views

app_name = 'cheques'

urlpatterns = [
    # Cheques
    path('cheques/', views.cheques, name='cheques'),
    path('cheques/<uuid:cheque_id>/', views.cheque_detail, name='cheque_detail'),
    path('cheques/<uuid:cheque_id>/mark-ready/', views.mark_ready, name='mark_ready'),
    path('cheques/<uuid:cheque_id>/forward-to-reception/', views.forward_to_reception, name='forward_to_reception'),
    path('cheques/<uuid:cheque_id>/cancel/', views.cancel_cheque, name='cancel_cheque'),
    path('cheques/<uuid:cheque_id>/audit/', views.audit_trail, name='audit_trail'),

    # OTP handover
    path('cheques/<uuid:cheque_id>/generate-otp/', views.generate_otp, name='generate_otp'),
    path('cheques/<uuid:cheque_id>/verify-otp/', views.verify_otp, name='verify_otp'),

    # Override handover
    path('cheques/<uuid:cheque_id>/handover-override/', views.request_override, name='request_override'),
    path('cheques/<uuid:cheque_id>/complete-override-handover/', views.complete_override_handover,
         name='complete_override_handover'),
    path('cheques/<uuid:cheque_id>/overrides/', views.cheque_overrides, name='cheque_overrides'),
    path('handover-override/pending/', views.pending_overrides, name='pending_overrides'),
    path('handover-override/<uuid:override_id>/approve/', views.approve_override, name='approve_override'),
    path('handover-override/<uuid:override_id>/reject/', views.reject_override, name='reject_override'),
]
