# Models package - database models for the scoring engine
from lead_qualifier.models.criterion import ICPCriterion
from lead_qualifier.models.lead import Lead, LeadEnrichment
from lead_qualifier.models.scoring import ScoringModel, Outcome, ScoringHistory, ScoringSettings
from lead_qualifier.models.activity import ActivityLog
from lead_qualifier.models.webhook import Webhook, WebhookDelivery
from lead_qualifier.models.notification import OrganizationMember, Notification
