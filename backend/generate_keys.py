import secrets
import os
from cryptography.fernet import Fernet

# Credential encryption key plus the two shared webhook/function secrets
generated = {
    "TOKEN_ENCRYPTION_KEY": Fernet.generate_key().decode(),
    "FUNCTION_SECRET": secrets.token_urlsafe(32),
    "SMARTLEAD_WEBHOOK_SECRET": secrets.token_urlsafe(24),
}

for name, value in generated.items():
    print(f"Generated {name}: {value}")

template_path = ".env.template"
env_path = ".env"

if os.path.exists(env_path):
    print(f"{env_path} already exists; not overwriting. Copy the values above by hand.")

elif os.path.exists(template_path):
    with open(template_path, "r") as f:
        lines = f.read().splitlines()

    new_lines = []
    for line in lines:
        name = line.split("=", 1)[0]
        if name in generated:
            new_lines.append(f"{name}={generated[name]}")
        else:
            new_lines.append(line)

    with open(env_path, "w") as f:
        f.write("\n".join(new_lines) + "\n")

    print(f"Successfully wrote to {env_path}")

else:
    print(f"Error: {template_path} not found. Please ensure it exists.")
