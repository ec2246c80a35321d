from service_scheduler.domains.threshold_engine.types import ServiceType

# Urgency curve
URGENCY_EXPONENT = 1.5
# SoC margin above the charge threshold where urgency starts rising.
CHARGE_SAFETY_MARGIN_PERCENT = 20.0

# Priority queue
URGENCY_NOISE_FLOOR = 15.0
COMPOSITE_WEIGHTS = {
    "urgency": 0.4,
    "priority": 0.3,
    "time_sensitivity": 0.2,
    "energy": 0.1,
}
OFF_PEAK_ENERGY_BONUS = 100.0
# Current rate counts as "cheapest" within this factor of the lowest rate.
OFF_PEAK_RATE_TOLERANCE = 1.1

# How quickly a missed service becomes critical, per service type.
TIME_SENSITIVITY: dict[ServiceType, float] = {
    ServiceType.CHARGE: 100.0,
    ServiceType.DETAIL_CLEAN: 30.0,
    ServiceType.TIRE_ROTATION: 20.0,
    ServiceType.BATTERY_HEALTH_CHECK: 40.0,
    ServiceType.FULL_SERVICE: 50.0,
}
DEFAULT_TIME_SENSITIVITY = 50.0

# Bundling
VISIT_OVERHEAD_MINUTES = 15
BUNDLE_URGENCY_MIN = 40.0
BUNDLE_RATIO: dict[ServiceType, float] = {
    ServiceType.DETAIL_CLEAN: 0.8,
}
DEFAULT_BUNDLE_RATIO = 0.85
DEFAULT_SERVICE_DURATION_MINUTES = 30

# Charging
TARGET_SOC_PERCENT = 90.0
FAST_CHARGER_SOC_BELOW = 35.0
CHARGE_NOW_SOC_BELOW = 20.0
CHARGER_POWER_KW = {"fast": 250.0, "standard": 50.0}
DEFAULT_CURRENT_RATE = 0.10
DEFAULT_OFF_PEAK_RATE = 0.06
DEFAULT_HOURS_UNTIL_OFF_PEAK = 6
DEFAULT_OFF_PEAK_START_HOUR = 22
RISK_HIGH_SOC_BELOW = 15.0
RISK_MEDIUM_SOC_BELOW = 25.0
OFF_PEAK_PERIOD_NAME = "off_peak"
MORNING_SHOULDER_PERIOD_NAME = "shoulder_am"

# Member-facing durations per service type; charge defers to the charge recommendation.
SERVICE_DURATION_MINUTES: dict[ServiceType, int] = {
    ServiceType.CHARGE: 60,
    ServiceType.DETAIL_CLEAN: 45,
    ServiceType.TIRE_ROTATION: 30,
    ServiceType.BATTERY_HEALTH_CHECK: 20,
    ServiceType.FULL_SERVICE: 120,
}

SERVICE_LABELS: dict[ServiceType, str] = {
    ServiceType.CHARGE: "Charge",
    ServiceType.DETAIL_CLEAN: "Detail & Clean",
    ServiceType.TIRE_ROTATION: "Tire Rotation",
    ServiceType.BATTERY_HEALTH_CHECK: "Battery Health Check",
    ServiceType.FULL_SERVICE: "Full Service",
}

# Resource type serving each service.
SERVICE_RESOURCE_TYPE: dict[ServiceType, str] = {
    ServiceType.CHARGE: "charge_standard",
    ServiceType.DETAIL_CLEAN: "clean_detail",
    ServiceType.TIRE_ROTATION: "service_bay",
    ServiceType.BATTERY_HEALTH_CHECK: "service_bay",
    ServiceType.FULL_SERVICE: "service_bay",
}

# Turnaround buffer added after each slot, per resource type.
RESOURCE_BUFFER_MINUTES: dict[str, int] = {
    "charge_standard": 15,
    "charge_fast": 15,
    "clean_detail": 30,
    "service_bay": 60,
    "staging": 10,
}
DEFAULT_BUFFER_MINUTES = 15
