"""Shopify webhook subscription service.

WHAT: Registers the app's webhook topics for a shop after install
WHY: Order attribution needs orders/create; offboarding needs app/uninstalled
REFERENCES:
    - https://shopify.dev/docs/api/admin-graphql/2024-10/mutations/webhookSubscriptionCreate
"""

import logging
from typing import Dict

from oce_app.services.shopify_client import ShopifyAdminClient, ShopifyAPIError

logger = logging.getLogger(__name__)

# (GraphQL topic, callback path)
WEBHOOK_TOPICS = [
    ("ORDERS_CREATE", "/webhooks/orders/create"),
    ("APP_UNINSTALLED", "/webhooks/app/uninstalled"),
]

SUBSCRIPTION_MUTATION = """
mutation webhookSubscriptionCreate($topic: WebhookSubscriptionTopic!, $webhookSubscription: WebhookSubscriptionInput!) {
    webhookSubscriptionCreate(topic: $topic, webhookSubscription: $webhookSubscription) {
        webhookSubscription {
            id
            topic
        }
        userErrors {
            field
            message
        }
    }
}
"""


async def subscribe_to_webhooks(client: ShopifyAdminClient, app_url: str) -> Dict[str, dict]:
    """Subscribe the shop to every topic in WEBHOOK_TOPICS.

    Each topic is attempted independently; a failure is recorded in the
    result instead of stopping the loop.

    Returns:
        {topic: {"id": ...} | {"error": ...}}
    """
    backend_url = (app_url or "").rstrip("/")
    if not backend_url:
        logger.error("[WEBHOOK_SUB] No SHOPIFY_APP_URL configured")
        return {"error": "No webhook callback URL configured"}

    # Shopify only delivers to HTTPS endpoints
    if backend_url.startswith("http://"):
        backend_url = backend_url.replace("http://", "https://", 1)

    results: Dict[str, dict] = {}
    for topic, path in WEBHOOK_TOPICS:
        try:
            data = await client.graphql(SUBSCRIPTION_MUTATION, {
                "topic": topic,
                "webhookSubscription": {"callbackUrl": f"{backend_url}{path}", "format": "JSON"},
            })
            payload = data.get("webhookSubscriptionCreate") or {}
            user_errors = payload.get("userErrors") or []
            if user_errors:
                # "Address for this topic has already been taken" on re-install
                results[topic] = {"error": user_errors[0].get("message")}
                logger.info("[WEBHOOK_SUB] %s for %s: %s", topic, client.shop, user_errors[0].get("message"))
            else:
                results[topic] = {"id": (payload.get("webhookSubscription") or {}).get("id")}
                logger.info("[WEBHOOK_SUB] Subscribed %s for %s", topic, client.shop)
        except ShopifyAPIError as e:
            logger.error("[WEBHOOK_SUB] Failed to subscribe to %s for %s: %s", topic, client.shop, e)
            results[topic] = {"error": str(e)}

    return results
