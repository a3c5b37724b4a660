"""HTML templates for the login and privacy policy pages.

Rendered with ``str.format``; literal braces are doubled.

Theme colors:
- Background: #F4F6F8
- Primary: #1E6FB8
- Primary hover: #195E9C
- Text: #1A1F24
- Secondary text: #5F6B76
"""

BASE_STYLE = """
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; background: #F4F6F8;
               min-height: 100vh; display: flex; align-items: center; justify-content: center; margin: 0; }}
        .container {{ background: white; padding: 40px; border-radius: 16px; box-shadow: 0 4px 24px rgba(0,0,0,0.08);
                     width: 100%; max-width: 420px; border: 1px solid #E1E5EA; }}
        h1 {{ margin: 0 0 8px; color: #1A1F24; font-size: 24px; font-weight: 600; }}
        p {{ color: #5F6B76; margin: 0 0 24px; line-height: 1.5; }}
"""

LOGIN_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <title>{title}</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
""" + BASE_STYLE + """
        .form-group {{ margin-bottom: 20px; }}
        label {{ display: block; margin-bottom: 8px; color: #1A1F24; font-weight: 500; font-size: 14px; }}
        input[type="email"], input[type="password"] {{
            width: 100%; padding: 12px 14px; border: 1px solid #CBD2D9; border-radius: 8px;
            font-size: 15px; box-sizing: border-box; background: #F9FAFB; }}
        input:focus {{ outline: none; border-color: #1E6FB8; box-shadow: 0 0 0 3px rgba(30,111,184,0.1); }}
        button {{ width: 100%; padding: 14px; background: #1E6FB8; color: white; border: none; border-radius: 8px;
                 font-size: 15px; font-weight: 600; cursor: pointer; }}
        button:hover {{ background: #195E9C; }}
        button:disabled {{ opacity: 0.6; cursor: wait; }}
        .message {{ display: none; padding: 12px; border-radius: 8px; margin-bottom: 20px; }}
        .message.error {{ display: block; background: #FEF2F2; color: #B91C1C; border: 1px solid #FECACA; }}
        .message.success {{ display: block; background: #D1FAE5; color: #065F46; border: 1px solid #A7F3D0; }}
        .footer {{ text-align: center; margin-top: 20px; font-size: 13px; }}
        .footer a {{ color: #1E6FB8; text-decoration: none; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Sign In</h1>
        <p>Sign in with your MyQ account to link your garage doors and lights.</p>
        <div id="message" class="message"></div>
        <form id="login-form">
            <div class="form-group">
                <label for="email">Email</label>
                <input type="email" id="email" name="email" required placeholder="your@email.com">
            </div>
            <div class="form-group">
                <label for="password">Password</label>
                <input type="password" id="password" name="password" required placeholder="Your MyQ password">
            </div>
            <button type="submit" id="submit">Sign In</button>
        </form>
        <div class="footer"><a href="/privacy-policy">Privacy Policy</a></div>
    </div>
    <script>
        const form = document.getElementById('login-form');
        const message = document.getElementById('message');
        const submit = document.getElementById('submit');

        function show(kind, text) {{
            message.className = 'message ' + kind;
            message.textContent = text;
        }}

        form.addEventListener('submit', async (event) => {{
            event.preventDefault();
            submit.disabled = true;
            try {{
                const response = await fetch('/login', {{
                    method: 'POST',
                    credentials: 'same-origin',
                    headers: {{ 'Content-Type': 'application/json' }},
                    body: JSON.stringify({{
                        email: form.email.value,
                        password: form.password.value
                    }})
                }});
                const text = await response.text();
                const result = text ? JSON.parse(text) : {{}};
                if (result.redirectUri) {{
                    show('success', result.message);
                    window.location.href = result.redirectUri;
                    return;
                }}
                if (result.success) {{
                    show('success', result.message);
                }} else {{
                    show('error', result.message || result.error_description || 'Unable to sign in.');
                }}
            }} catch (err) {{
                show('error', 'Something unexpected happened. Please wait a bit and try again.');
            }} finally {{
                submit.disabled = false;
            }}
        }});
    </script>
</body>
</html>
"""

PRIVACY_POLICY_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <title>{title}</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
""" + BASE_STYLE + """
        .container {{ max-width: 640px; }}
        h2 {{ color: #1A1F24; font-size: 17px; margin: 24px 0 8px; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Privacy Policy</h1>
        <p>This service links your MyQ account to voice and home assistants so they can list your devices
        and open, close or switch them on your behalf.</p>
        <h2>What we store</h2>
        <p>Your MyQ email address, a one-way salted hash of your password and the session token MyQ issues
        when you sign in. Your plaintext password is never stored.</p>
        <h2>How it is used</h2>
        <p>Each request from a linked assistant signs in to MyQ again on your behalf and performs exactly the
        device operation that was requested. Device data is passed through and not kept.</p>
        <h2>Sharing</h2>
        <p>Nothing is shared with anyone other than MyQ and the assistant you linked.</p>
        <h2>Removing your data</h2>
        <p>Unlink the service from your assistant and change your MyQ password to invalidate everything we hold.</p>
    </div>
</body>
</html>
"""
