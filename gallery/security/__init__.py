from gallery.security.problem_details import problem_response

__all__ = ["problem_response"]
