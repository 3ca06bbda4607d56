import enum

class Role(str, enum.Enum):
    administrator = "administrator"
    clinician = "clinician"
    coordinator = "coordinator"

class ServiceType(str, enum.Enum):
    ambulatory = "ambulatory"
    hospital = "hospital"

class RequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"

class Justification(str, enum.Enum):
    out_of_formulary = "OutOfFormulary"
    direct_purchase = "DirectPurchase"
    no_stock_available = "NoStockAvailable"

class Period(str, enum.Enum):
    weekly = "weekly"
    monthly = "monthly"
    annual = "annual"
