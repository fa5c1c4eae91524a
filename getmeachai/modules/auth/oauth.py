from authlib.integrations.flask_client import OAuth

from getmeachai.core.config import setting

# OAuth configuration
oauth = OAuth()

PROVIDERS = ('google', 'github')


def validate_password_strength(password):
    """Validate password meets security requirements"""
    if not isinstance(password, str) or len(password) < 8:
        return False

    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)

    return has_upper and has_lower and has_digit


def configure_oauth(app):
    """Register the OAuth providers that have client credentials. Returns their names."""
    oauth.init_app(app)
    enabled = []

    google_id = setting('GOOGLE_CLIENT_ID', source=app.config)
    if google_id:
        oauth.register(
            name='google',
            client_id=google_id,
            client_secret=setting('GOOGLE_CLIENT_SECRET', source=app.config),
            server_metadata_url='https://accounts.google.com/.well-known/openid-configuration',
            client_kwargs={'scope': 'openid email profile'},
            overwrite=True,
        )
        enabled.append('google')

    github_id = setting('GITHUB_CLIENT_ID', source=app.config)
    if github_id:
        oauth.register(
            name='github',
            client_id=github_id,
            client_secret=setting('GITHUB_CLIENT_SECRET', source=app.config),
            access_token_url='https://github.com/login/oauth/access_token',
            authorize_url='https://github.com/login/oauth/authorize',
            api_base_url='https://api.github.com/',
            client_kwargs={'scope': 'user:email'},
            overwrite=True,
        )
        enabled.append('github')

    app.config['OAUTH_PROVIDERS'] = enabled
    return enabled


def fetch_profile(provider, client, token):
    """Normalise the provider profile to (oauth_id, email, name, avatar)"""
    if provider == 'google':
        info = token.get('userinfo') or client.userinfo()
        return info['sub'], info.get('email'), info.get('name'), info.get('picture')

    profile = client.get('user').json()
    email = profile.get('email')
    if not email:
        emails = client.get('user/emails').json()
        primary = next((e for e in emails if e.get('primary') and e.get('verified')), None)
        email = primary['email'] if primary else None
    return profile['id'], email, profile.get('name') or profile.get('login'), profile.get('avatar_url')
