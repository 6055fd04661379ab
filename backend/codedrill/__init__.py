"""CodeDrill adaptive coding-practice backend."""
