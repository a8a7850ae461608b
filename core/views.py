from django.http import HttpResponse, JsonResponse

HOME_PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>Furo · API Marketplace</title>
<style>
    :root {
        font-family: "Space Grotesk", "Inter", -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
        color: #0f172a;
        background: radial-gradient(circle at top, #f0fdf4, #ffffff 45%);
    }
    body {
        margin: 0;
        min-height: 100vh;
        display: flex;
        align-items: center;
        justify-content: center;
    }
    .hero {
        width: min(960px, 92vw);
        padding: 3rem 3.5rem;
        border-radius: 32px;
        background: rgba(255, 255, 255, 0.9);
        box-shadow: 0 20px 45px rgba(15, 23, 42, 0.08);
        border: 1px solid rgba(16, 185, 129, 0.15);
    }
    .eyebrow {
        text-transform: uppercase;
        font-size: 0.85rem;
        letter-spacing: 0.2em;
        color: #059669;
        font-weight: 600;
    }
    h1 {
        font-size: clamp(2.5rem, 4vw, 3.75rem);
        margin: 0.25rem 0 1rem;
    }
    .cta-row {
        margin-top: 2rem;
        display: flex;
        gap: 1rem;
        flex-wrap: wrap;
    }
    .cta {
        flex: 1 1 220px;
        padding: 1.25rem;
        border-radius: 18px;
        border: 1px solid rgba(15, 23, 42, 0.08);
        background: #f8fafc;
    }
    code {
        font-size: 0.95rem;
        background: rgba(16, 185, 129, 0.1);
        padding: 0.4rem 0.6rem;
        border-radius: 8px;
        display: inline-block;
    }
</style>
</head>
<body>
    <main class="hero">
        <div class="eyebrow">Furo</div>
        <h1>API Marketplace</h1>
        <p>
            Pay for API calls on-chain and receive single-use access tokens.
            Providers publish APIs, developers buy calls and track what they have left.
        </p>
        <div class="cta-row">
            <div class="cta">
                <p>Browse published APIs.</p>
                <code>GET /api/apis</code>
            </div>
            <div class="cta">
                <p>Exchange a payment for tokens.</p>
                <code>POST /api/payments/process</code>
            </div>
            <div class="cta">
                <p>Review purchases and remaining tokens.</p>
                <code>GET /api/purchased-apis</code>
            </div>
        </div>
    </main>
</body>
</html>"""


def home(request):
    return HttpResponse(HOME_PAGE_HTML, content_type="text/html; charset=utf-8")


def health(request):
    return JsonResponse({"status": "ok"})
