"""
System validation utilities for the exam-prep API
"""

from importlib import import_module
from typing import Dict, Any

from examprep.config import settings
from examprep.utils.logger import logger


class SystemValidator:
    """Validate system components are properly initialized and connected"""

    # module name -> class the module must define
    SERVICES = {
        "document_store": "DocumentStore",
        "supabase_service": "SupabaseDocumentStore",
        "attempt_store": "AttemptStore",
        "autosave": "AutosaveController",
        "access_service": "AccessService",
        "submission_service": "SubmissionService",
        "analytics_service": "AnalyticsUpdater",
        "embedding_service": "EmbeddingService",
        "knowledge_base": "KnowledgeBaseService",
        "conversation_log": "ConversationLogService",
        "tutor_service": "TutorPipeline",
        "support_service": "SupportChatService",
    }

    ROUTES = ("quiz", "tutor", "support")

    @staticmethod
    def validate_configuration() -> Dict[str, Any]:
        """Report which external integrations have usable settings"""
        store_backend = settings.DOCUMENT_STORE_BACKEND
        return {
            "document_store": {"status": "configured", "backend": store_backend},
            "openai": {
                "status": "configured"
                if settings.OPENAI_API_KEY and "your-openai" not in settings.OPENAI_API_KEY
                else "not_configured"
            },
            "site_context": {"status": "configured", "urls": len(settings.site_context_urls_list)},
        }

    @staticmethod
    def validate_services() -> Dict[str, Any]:
        """Validate all services are importable"""
        results = {}

        for module_name, class_name in SystemValidator.SERVICES.items():
            try:
                module = import_module(f"examprep.services.{module_name}")
                if hasattr(module, class_name):
                    results[module_name] = {"status": "loaded"}
                else:
                    results[module_name] = {"status": "failed", "error": f"{class_name} not defined"}
            except ImportError:
                results[module_name] = {"status": "not_found", "error": "Module does not exist"}
            except Exception as e:
                results[module_name] = {"status": "error", "error": str(e)}

        return results

    @staticmethod
    def validate_routes() -> Dict[str, Any]:
        """Validate all routes are importable"""
        results = {}

        for route_name in SystemValidator.ROUTES:
            try:
                module = import_module(f"examprep.routes.{route_name}")
                if hasattr(module, "router"):
                    results[route_name] = {"status": "loaded", "has_router": True}
                else:
                    results[route_name] = {"status": "warning", "has_router": False}
            except Exception as e:
                results[route_name] = {"status": "error", "error": str(e)}

        return results

    @staticmethod
    def full_validation() -> Dict[str, Any]:
        """Perform full system validation"""
        logger.info("Starting full system validation...")

        validation_results = {
            "configuration": SystemValidator.validate_configuration(),
            "services": SystemValidator.validate_services(),
            "routes": SystemValidator.validate_routes(),
            "overall_status": "unknown"
        }

        all_services_ok = all(
            service.get("status") == "loaded"
            for service in validation_results["services"].values()
        )

        all_routes_ok = all(
            route.get("status") == "loaded"
            for route in validation_results["routes"].values()
        )

        if all_services_ok and all_routes_ok:
            validation_results["overall_status"] = "healthy"
            logger.info("System validation passed - all components healthy")
        else:
            validation_results["overall_status"] = "degraded"
            logger.warning("System validation found issues - some components may not be working")

        return validation_results


# Global validator instance
system_validator = SystemValidator()
