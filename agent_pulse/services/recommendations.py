"""
agent_pulse/services/recommendations.py
Remediation templates keyed by check id, instantiated for every check that
did not pass.
"""
from typing import Dict, List, NamedTuple, Optional

from ..models import Check, CheckStatus, Effort, Priority, Recommendation, ValidationResult

PRIORITY_RANK = {Priority.CRITICAL: 0, Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}


class Template(NamedTuple):
    priority: Priority
    effort: Effort
    title: str
    description: str
    how_to_fix: str


_BOT_RULES = "\n".join(
    f"User-agent: {bot}\nAllow: /\n"
    for bot in ("GPTBot", "OAI-SearchBot", "ChatGPT-User", "ClaudeBot", "Anthropic-AI",
                "PerplexityBot", "Google-Extended", "Amazonbot")
)

TEMPLATES: Dict[str, Template] = {
    "D1": Template(
        Priority.CRITICAL, Effort.QUICK,
        "Allow AI shopping bots in robots.txt",
        "Your robots.txt is blocking critical AI shopping agents like GPTBot and ClaudeBot.",
        f"Add these rules to your robots.txt file:\n\n{_BOT_RULES}",
    ),
    "D2": Template(
        Priority.HIGH, Effort.MODERATE,
        "Add complete Product schema markup",
        "AI agents need structured product data to understand and recommend your products.",
        """Add this JSON-LD to your product pages:

<script type="application/ld+json">
{
  "@context": "https://schema.org",
  "@type": "Product",
  "name": "Your Product Name",
  "description": "Detailed product description",
  "image": "https://yoursite.com/image.jpg",
  "sku": "SKU123",
  "gtin13": "4006381333931",
  "brand": {"@type": "Brand", "name": "Your Brand"},
  "offers": {
    "@type": "Offer",
    "price": "29.99",
    "priceCurrency": "USD",
    "availability": "https://schema.org/InStock"
  }
}
</script>""",
    ),
    "D3": Template(
        Priority.MEDIUM, Effort.QUICK,
        "Create an XML sitemap",
        "A sitemap helps AI agents efficiently discover all your products.",
        """Create a sitemap.xml at your root domain:

1. Shopify generates /sitemap.xml automatically
2. WordPress: install Yoast SEO or RankMath
3. Custom sites: generate one with your framework or a sitemap tool

Reference it from robots.txt with a `Sitemap:` line.""",
    ),
    "D4": Template(
        Priority.LOW, Effort.QUICK,
        "Publish an llms.txt file",
        "llms.txt gives language models a curated map of your store.",
        """Create /llms.txt as plain markdown:

# Your Store
> One-line description of what you sell

## Key pages
- [Products](https://yoursite.com/products): full catalog
- [Shipping](https://yoursite.com/shipping): delivery terms
- [Returns](https://yoursite.com/returns): return policy""",
    ),
    "D5": Template(
        Priority.LOW, Effort.QUICK,
        "Add WebSite schema with SearchAction",
        "A SearchAction lets agents query your catalog directly.",
        """Add to your homepage:

<script type="application/ld+json">
{
  "@context": "https://schema.org",
  "@type": "WebSite",
  "name": "Your Store",
  "url": "https://yoursite.com",
  "potentialAction": {
    "@type": "SearchAction",
    "target": "https://yoursite.com/search?q={search_term_string}",
    "query-input": "required name=search_term_string"
  }
}
</script>""",
    ),
    "D6": Template(
        Priority.LOW, Effort.MODERATE,
        "Add FAQPage schema",
        "Structured FAQs let answer engines cite your answers to shopper questions.",
        """Mark up at least five real questions:

<script type="application/ld+json">
{
  "@context": "https://schema.org",
  "@type": "FAQPage",
  "mainEntity": [{
    "@type": "Question",
    "name": "How long does shipping take?",
    "acceptedAnswer": {"@type": "Answer", "text": "Orders ship within 2 business days and arrive in 3-5 days."}
  }]
}
</script>""",
    ),
    "D7": Template(
        Priority.MEDIUM, Effort.MODERATE,
        "Reduce server response time",
        "Agents crawl on tight time budgets and skip servers that are slow to answer.",
        """Aim for a time to first byte under 400ms:

1. Serve product and category pages from a CDN edge cache
2. Cache rendered HTML instead of rebuilding it per request
3. Check slow database queries and third-party calls on the request path
4. Host close to your main market""",
    ),
    "N1": Template(
        Priority.HIGH, Effort.SIGNIFICANT,
        "Improve page load speed",
        "Slow pages cause AI agents to time out before completing analysis.",
        """Key optimizations:

1. Compress images (WebP, under 100KB for thumbnails)
2. Enable browser caching
3. Minify CSS and JavaScript
4. Serve through a CDN
5. Lazy load images below the fold
6. Reduce third-party scripts

Test with: pagespeed.web.dev""",
    ),
    "T1": Template(
        Priority.HIGH, Effort.MODERATE,
        "Add complete Offer schema with pricing",
        "AI agents need structured pricing data to make purchase recommendations.",
        """Ensure your Offer schema includes:

{
  "@type": "Offer",
  "price": "29.99",
  "priceCurrency": "USD",
  "availability": "https://schema.org/InStock",
  "seller": {"@type": "Organization", "name": "Your Store Name"}
}

Valid availability values include InStock, OutOfStock and PreOrder.""",
    ),
    "T2": Template(
        Priority.CRITICAL, Effort.MODERATE,
        "Enable HTTPS",
        "AI agents will not complete transactions on insecure sites.",
        """Install an SSL certificate:

1. Many hosts offer free certificates (Let's Encrypt)
2. Hosted platforms such as Shopify include SSL by default
3. A CDN like Cloudflare can terminate TLS for any site

After installing, redirect all HTTP traffic to HTTPS.""",
    ),
    "T3": Template(
        Priority.HIGH, Effort.MODERATE,
        "Complete checkout data for AI agents",
        "Agents need pricing, shipping details and the regions your return policy covers to check out.",
        """Extend your Offer with shipping and return details:

"offers": {
  "@type": "Offer",
  "price": "29.99",
  "priceCurrency": "USD",
  "availability": "https://schema.org/InStock",
  "shippingDetails": {
    "@type": "OfferShippingDetails",
    "shippingRate": {"@type": "MonetaryAmount", "value": "4.95", "currency": "USD"},
    "shippingDestination": {"@type": "DefinedRegion", "addressCountry": "US"},
    "deliveryTime": {"@type": "ShippingDeliveryTime",
                     "transitTime": {"@type": "QuantitativeValue", "minValue": 2, "maxValue": 5}}
  },
  "hasMerchantReturnPolicy": {"@type": "MerchantReturnPolicy", "applicableCountry": "US"}
}""",
    ),
    "T4": Template(
        Priority.MEDIUM, Effort.MODERATE,
        "Offer mainstream payment methods",
        "Agents complete purchases through well-known payment rails.",
        """Expose at least three payment methods on product and checkout pages:

- Stripe (powers agentic checkout for ChatGPT)
- PayPal / Braintree
- Apple Pay and Google Pay
- Klarna for buy-now-pay-later""",
    ),
    "R1": Template(
        Priority.MEDIUM, Effort.QUICK,
        "Add Organization schema",
        "Helps AI agents verify your business identity and build trust.",
        """Add to your homepage:

<script type="application/ld+json">
{
  "@context": "https://schema.org",
  "@type": "Organization",
  "name": "Your Company Name",
  "url": "https://yoursite.com",
  "logo": "https://yoursite.com/logo.png",
  "sameAs": ["https://www.instagram.com/yourstore"],
  "contactPoint": {
    "@type": "ContactPoint",
    "telephone": "+1-800-555-1234",
    "contactType": "customer service"
  }
}
</script>""",
    ),
    "R2": Template(
        Priority.HIGH, Effort.QUICK,
        "Add MerchantReturnPolicy schema",
        "AI agents verify return policies before recommending purchases.",
        """Add to your product or policy pages:

<script type="application/ld+json">
{
  "@context": "https://schema.org",
  "@type": "MerchantReturnPolicy",
  "applicableCountry": "US",
  "returnPolicyCategory": "https://schema.org/MerchantReturnFiniteReturnWindow",
  "merchantReturnDays": 30,
  "returnMethod": "https://schema.org/ReturnByMail",
  "returnFees": "https://schema.org/FreeReturn"
}
</script>""",
    ),
    "R3": Template(
        Priority.HIGH, Effort.MODERATE,
        "Strengthen trust signals",
        "Agents look for a secure connection and machine-readable return terms before transacting.",
        "Serve every page over HTTPS and publish a complete MerchantReturnPolicy "
        "(see the Return Policy recommendation).",
    ),
    "P3": Template(
        Priority.CRITICAL, Effort.SIGNIFICANT,
        "Create a product feed for AI shopping protocols",
        "Your products are invisible to AI shopping protocols without a feed.",
        """Create a product feed:

Shopify: /products.json is native; make sure robots.txt does not block it.
WooCommerce: enable the Store API or a Google Merchant feed plugin.
Custom sites: publish JSON or XML at /products.json or /feed.xml with
title, price, currency, availability, SKU/GTIN and images.""",
    ),
    "P6": Template(
        Priority.HIGH, Effort.SIGNIFICANT,
        "Add checkout infrastructure for AI commerce",
        "AI agents need programmatic checkout access to complete purchases.",
        """Integrate a checkout API:

1. Stripe, used by the Agentic Commerce Protocol
2. Shopify Checkout for Shopify stores
3. PayPal Checkout

For headless commerce, expose checkout over REST or GraphQL and document
the endpoints for agent discovery.""",
    ),
    "P7": Template(
        Priority.HIGH, Effort.MODERATE,
        "Add protocol manifest for agent commerce",
        "UCP and MCP manifests allow AI agents to discover your commerce capabilities.",
        """Create /.well-known/ucp.json:

{
  "version": "1.0",
  "name": "Your Store",
  "capabilities": ["product-catalog", "checkout", "inventory"],
  "endpoints": {"products": "/api/products", "checkout": "/api/checkout"}
}

For ChatGPT plugins, also publish /.well-known/ai-plugin.json.""",
    ),
}


def generate_recommendations(
    checks: List[Check],
    validations: Optional[Dict[str, ValidationResult]] = None,
) -> List[Recommendation]:
    """
    One recommendation per non-passing check that has a template, sorted by
    priority. Skipped checks were never measured and get none.
    """
    validations = validations or {}
    recommendations = []

    for check in checks:
        if check.status in (CheckStatus.PASS, CheckStatus.SKIPPED):
            continue
        template = TEMPLATES.get(check.id)
        if template is None:
            continue

        description = template.description
        validation = validations.get(check.id)
        if validation is not None:
            if validation.missing_fields:
                description += f" Missing: {', '.join(validation.missing_fields)}."
            if validation.invalid_fields:
                description += f" Invalid: {', '.join(validation.invalid_fields)}."

        recommendations.append(Recommendation(
            check_id=check.id,
            check_name=check.name,
            priority=template.priority,
            effort=template.effort,
            title=template.title,
            description=description,
            how_to_fix=template.how_to_fix,
        ))

    # sorted() is stable: ties keep check order
    return sorted(recommendations, key=lambda r: PRIORITY_RANK[r.priority])
