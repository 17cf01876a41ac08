# backend/disputes/services/__init__.py
# Service layer of the dispute engine. Import from the submodules:
#   cases, negotiation, evidence, arbitration, statistics
# and the collaborator seams: order_context, notifications, audit.
