from resale_escrow.models.listing import Listing, VerificationRequest
from resale_escrow.models.order import Order, Escrow, Transfer
from resale_escrow.models.dispute import Dispute, DISPUTE_REASONS
from resale_escrow.models.fraud import FraudCheck, FraudBlacklist
from resale_escrow.models.seller import SellerProfile
from resale_escrow.models.notification import Notification
