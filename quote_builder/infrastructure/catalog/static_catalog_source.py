from __future__ import annotations

import copy
from typing import Any

from quote_builder.application.ports.catalog_source import CatalogSourcePort

# Used when the catalog service is unreachable, and by the local script.
DEFAULT_CATALOG: dict[str, Any] = {
    "packages": [
        {
            "id": "hvac-appliance-website",
            "name": "Professional HVAC & Appliance Website",
            "price": 1200,
            "original_price": 1700,
            "timeline": "18-24 days",
            "description": "Complete professional website for HVAC and appliance repair businesses",
            "included_features": [],
            "popular": True,
        }
    ],
    "features": [
        {"id": "online-booking", "name": "Smart Booking & Scheduling", "price": 450},
        {"id": "enhanced-seo", "name": "Premium Local SEO", "price": 350},
        {"id": "social-media", "name": "Social Media Hub", "price": 250},
        {"id": "customer-portal", "name": "Customer Service Portal", "price": 550},
        {"id": "live-chat", "name": "24/7 Live Chat Support", "price": 400},
        {"id": "advanced-analytics", "name": "Business Intelligence Dashboard", "price": 500},
    ],
    "components": {
        "pages": [
            {"id": "hvac-homepage", "name": "Professional HVAC & Appliance Homepage", "price": 0},
            {"id": "service-pages", "name": "Comprehensive Service Pages", "price": 0},
            {"id": "about-us", "name": "About Us Page", "price": 99},
            {"id": "testimonials-page", "name": "Customer Testimonials Page", "price": 149},
            {"id": "faq-page", "name": "FAQ Page", "price": 149},
        ],
        "technical": [
            {"id": "ssl-certificate", "name": "SSL Security Certificate", "price": 79},
            {"id": "backup-system", "name": "Automated Backup System", "price": 99},
            {"id": "cdn-integration", "name": "CDN Integration", "price": 149},
        ],
    },
    "addons": [
        {"id": "priority-support", "name": "Priority Support", "price": 199},
        {"id": "maintenance-programs", "name": "Maintenance Programs", "price": 149},
        {"id": "installation-services", "name": "Installation Services", "price": 149},
    ],
    "emergency_services": [
        {"id": "emergency-basic", "name": "Emergency Call Buttons", "price": 0},
        {"id": "emergency-services", "name": "Emergency Service Management", "price": 299},
    ],
    "service_areas": [
        {"id": "single-city", "name": "Single City", "price": 0},
        {"id": "metro-area", "name": "Metro Area Coverage", "price": 249},
    ],
    "hvac_features": [
        {"id": "hvac-brand-support", "name": "HVAC Brand Support", "price": 0},
        {"id": "commercial-hvac-support", "name": "Commercial HVAC Support", "price": 149},
    ],
    "appliance_features": [
        {"id": "appliance-brand-support", "name": "Appliance Brand Support", "price": 0},
        {"id": "commercial-appliance-support", "name": "Commercial Appliance Support", "price": 149},
    ],
    "contact_features": [
        {"id": "service-request", "name": "Service Request System", "price": 149},
        {"id": "request-forms", "name": "Service Request Forms", "price": 99},
    ],
}


class StaticCatalogSource(CatalogSourcePort):
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = data if data is not None else DEFAULT_CATALOG

    def fetch_catalog(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)
