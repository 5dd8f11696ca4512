"""
Rehab Triage & Care-Team Assignment Engine
==========================================

The decision-making core of a rehabilitation-center administration system.
Classifies free-text injury descriptions into a severity assessment, maps
the assessment to a caregiver capability tier, assigns the least-loaded
eligible caregiver, and runs the progress-update approval workflow that
gates changes to a patient's treatment record.

DISCLAIMER: Severity assessments are workflow routing signals for staff
review.  They are not liability-grade medical decisions and do not replace
clinical judgement.
"""

__version__ = "0.1.0"
