"""Browser-facing building blocks (Playwright).

Session provisioning (``provisioner``), bounded navigation
(``navigation``), checkpoint screenshots (``artifacts``) and human-pacing
delays (``pacing``). Nothing here decides whether a target passed; that
is the job of ``siteverify.verification``.
"""
