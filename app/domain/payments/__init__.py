"""
Payments Domain

M-Pesa STK push collection.

- mpesa_service.py: MpesaConfig / MpesaClient (gateway HTTP calls, injected)
- repository.py: payment and transaction queries (status transitions are
  guarded by status = 'pending')
- service.py: PaymentService (initiate, callback, status query, reconciliation)
- router.py: /payments endpoints, including the unauthenticated callback
"""
